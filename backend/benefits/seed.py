"""Development data.

The in-memory HR directory is seeded with a few employees when the API starts
in development. Run this module against a running API to create sample
requests:

    python -m benefits.seed
"""

from __future__ import annotations

import asyncio
import sys
import uuid
from datetime import date
from decimal import Decimal

import httpx

from benefits.services.employee import EmployeeInfo, InMemoryEmployeeService

BASE_URL = "http://localhost:8000"

# Well-known employee UUIDs
ALICE_ID = "00000000-0000-0000-0000-000000000002"
BOB_ID = "00000000-0000-0000-0000-000000000003"
CAROL_ID = "00000000-0000-0000-0000-000000000004"
MANAGER_ID = "00000000-0000-0000-0000-000000000010"

DEV_EMPLOYEES = [
    EmployeeInfo(
        id=uuid.UUID(ALICE_ID),
        name="Alice Johnson",
        team="Engineering",
        position="Senior Engineer",
        start_date=date(2021, 3, 1),
        budgets={"training": Decimal("15000")},
    ),
    EmployeeInfo(
        id=uuid.UUID(BOB_ID),
        name="Bob Smith",
        team="Sales",
        position="Account Executive",
        start_date=date(2023, 6, 1),
    ),
    EmployeeInfo(
        id=uuid.UUID(CAROL_ID),
        name="Carol Williams",
        team="Operations",
        position="Coordinator",
        start_date=date.today(),
    ),
]


def seed_directory(service: InMemoryEmployeeService) -> None:
    for employee in DEV_EMPLOYEES:
        service.seed(employee)


def _headers(user_id: str, role: str = "employee") -> dict[str, str]:
    return {"Content-Type": "application/json", "X-User-Id": user_id, "X-Role": role}


async def _safe_post(client: httpx.AsyncClient, url: str, json: dict, headers: dict, label: str) -> dict | None:
    """POST that reports capacity conflicts instead of failing the run."""
    resp = await client.post(url, json=json, headers=headers)
    if resp.status_code in (200, 201):
        print(f"  [OK] {label}")
        return resp.json()
    if resp.status_code == 409:
        print(f"  [SKIP] {label} ({resp.json().get('error')})")
        return None
    print(f"  [ERROR] {label}: {resp.status_code} {resp.text[:200]}")
    return None


async def seed_requests(client: httpx.AsyncClient) -> None:
    print("\n--- Seeding requests ---")

    # Alice: glasses, stays with the manager.
    await _safe_post(
        client,
        f"{BASE_URL}/requests",
        {
            "employee_id": ALICE_ID,
            "payload": {"benefit_type": "glasses", "base_amount": "1200.00", "vat_amount": "84.00"},
        },
        _headers(ALICE_ID),
        "Request: Alice glasses (PENDING_MANAGER)",
    )

    # Alice: training above her remaining budget, split with the company.
    await _safe_post(
        client,
        f"{BASE_URL}/requests",
        {
            "employee_id": ALICE_ID,
            "payload": {
                "benefit_type": "training",
                "base_amount": "16000.00",
                "vat_amount": "1120.00",
                "withholding_amount": "480.00",
                "course_name": "Distributed Systems",
            },
        },
        _headers(ALICE_ID),
        "Request: Alice external training (over budget)",
    )

    # Bob: a cash advance approved all the way through.
    advance = await _safe_post(
        client,
        f"{BASE_URL}/requests",
        {
            "employee_id": BOB_ID,
            "payload": {"benefit_type": "advance", "base_amount": "5000.00", "description": "Client visit"},
        },
        _headers(BOB_ID),
        "Request: Bob cash advance",
    )
    if advance:
        for role in ("manager", "hr", "accounting"):
            resp = await client.post(
                f"{BASE_URL}/requests/{advance['id']}/decision",
                json={"decision": "approve", "note": "Seed approval"},
                headers=_headers(MANAGER_ID, role),
            )
            if resp.status_code != 200:
                print(f"  [ERROR] {role} approval: {resp.status_code} {resp.text[:200]}")
                return
        print("  [OK] Approved Bob's advance")

        await _safe_post(
            client,
            f"{BASE_URL}/requests",
            {
                "employee_id": BOB_ID,
                "payload": {
                    "benefit_type": "expense_clearing",
                    "advance_request_id": advance["id"],
                    "vat_mode": "system",
                    "line_items": [
                        {"category": "travel", "tax_rate": "0", "request_amount": "3000.00", "used_amount": "2600.00"},
                        {"category": "meals", "tax_rate": "3", "request_amount": "2000.00", "used_amount": "1500.00"},
                    ],
                },
            },
            _headers(BOB_ID),
            "Request: Bob expense clearing",
        )


async def main() -> None:
    print("=" * 60)
    print("  Benefit Desk: Development Seed Script")
    print("=" * 60)

    async with httpx.AsyncClient(timeout=30.0) as client:
        try:
            resp = await client.get(f"{BASE_URL}/health")
            if resp.status_code != 200:
                print(f"API health check failed: {resp.status_code}")
                sys.exit(1)
            print("\n[OK] API is healthy")
        except httpx.ConnectError:
            print("ERROR: Cannot connect to API at", BASE_URL)
            sys.exit(1)

        await seed_requests(client)

    print("\nDone.")


if __name__ == "__main__":
    asyncio.run(main())
