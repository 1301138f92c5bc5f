"""API tests for the request workflow: submit, edit, decide, cancel, budgets and usage."""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import pytest
from sqlmodel import col, select

from benefits.models import AuditLog

if TYPE_CHECKING:
    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncSession

    from benefits.services.documents import InMemoryDocumentStore
    from benefits.services.employee import EmployeeInfo
    from benefits.services.notifications import InMemoryNotificationService

D = Decimal
APPROVER_ID = uuid.uuid4()


def _headers(user_id: uuid.UUID, role: str = "employee") -> dict[str, str]:
    return {"X-User-Id": str(user_id), "X-Role": role}


# ---------------------------------------------------------------------------
# Test helpers
# ---------------------------------------------------------------------------


async def _submit(client: AsyncClient, employee: EmployeeInfo, payload: dict[str, Any]) -> Any:
    return await client.post(
        "/requests",
        json={"employee_id": str(employee.id), "payload": payload},
        headers=_headers(employee.id),
    )


async def _submit_ok(client: AsyncClient, employee: EmployeeInfo, payload: dict[str, Any]) -> dict[str, Any]:
    resp = await _submit(client, employee, payload)
    assert resp.status_code == 201, resp.text
    result: dict[str, Any] = resp.json()
    return result


async def _decide(client: AsyncClient, request_id: str, role: str, decision: str = "approve") -> Any:
    return await client.post(
        f"/requests/{request_id}/decision",
        json={"decision": decision, "signature_ref": f"sig-{role}", "note": f"{role} {decision}"},
        headers=_headers(APPROVER_ID, role),
    )


async def _approve_through(client: AsyncClient, request_id: str, *roles: str) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for role in roles:
        resp = await _decide(client, request_id, role)
        assert resp.status_code == 200, resp.text
        data = resp.json()
    return data


async def _remaining(client: AsyncClient, employee: EmployeeInfo, benefit_type: str) -> Decimal | None:
    resp = await client.get(f"/employees/{employee.id}/budgets/{benefit_type}", headers=_headers(employee.id))
    assert resp.status_code == 200
    value = resp.json()["remaining"]
    return None if value is None else D(value)


def _medical(amount: str) -> dict[str, Any]:
    return {"benefit_type": "medical", "base_amount": amount}


# ---------------------------------------------------------------------------
# Submit
# ---------------------------------------------------------------------------


async def test_submit_reserves_budget(
    async_client: AsyncClient,
    employee: EmployeeInfo,
    notifications: InMemoryNotificationService,
    documents: InMemoryDocumentStore,
) -> None:
    data = await _submit_ok(
        async_client,
        employee,
        {"benefit_type": "medical", "base_amount": "400", "vat_amount": "28", "withholding_amount": "12"},
    )
    assert data["status"] == "pending_manager"
    assert data["benefit_type"] == "medical"
    assert D(data["net_amount"]) == D("416")
    assert data["payload"]["base_amount"] == "400"
    assert data["submitted_at"] is not None
    assert data["document_ref"] in documents.documents

    assert await _remaining(async_client, employee, "medical") == D("584")
    assert [e.new_status for e in notifications.events] == ["pending_manager"]


async def test_submit_over_budget_is_rejected_without_side_effect(
    async_client: AsyncClient, employee: EmployeeInfo, notifications: InMemoryNotificationService
) -> None:
    resp = await _submit(async_client, employee, _medical("1000.01"))
    assert resp.status_code == 409
    assert resp.json()["error"] == "InsufficientBudget"
    assert resp.json()["retryable"] is False

    assert await _remaining(async_client, employee, "medical") == D("1000")
    listing = await async_client.get("/requests", headers=_headers(employee.id))
    assert listing.json()["total"] == 0
    assert notifications.events == []


async def test_submit_for_someone_else_is_forbidden(
    async_client: AsyncClient, employee: EmployeeInfo, other_employee: EmployeeInfo
) -> None:
    resp = await async_client.post(
        "/requests",
        json={"employee_id": str(other_employee.id), "payload": _medical("100")},
        headers=_headers(employee.id),
    )
    assert resp.status_code == 403


async def test_submit_for_unknown_employee(async_client: AsyncClient) -> None:
    resp = await async_client.post(
        "/requests",
        json={"employee_id": str(uuid.uuid4()), "payload": _medical("100")},
        headers=_headers(uuid.uuid4(), "admin"),
    )
    assert resp.status_code == 404


async def test_unknown_benefit_type_fails_validation(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    resp = await _submit(async_client, employee, {"benefit_type": "yacht", "base_amount": "100"})
    assert resp.status_code == 422


async def test_negative_amount_is_invalid(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    resp = await _submit(async_client, employee, _medical("-5"))
    assert resp.status_code == 422
    assert resp.json()["error"] == "InvalidAmount"


async def test_pooled_types_share_budget(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    await _submit_ok(async_client, employee, {"benefit_type": "glasses", "base_amount": "1500"})
    assert await _remaining(async_client, employee, "dental") == D("500")

    resp = await _submit(async_client, employee, {"benefit_type": "dental", "base_amount": "600"})
    assert resp.status_code == 409


async def test_monthly_fitness_cap(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    await _submit_ok(async_client, employee, {"benefit_type": "fitness", "base_amount": "300"})
    resp = await _submit(async_client, employee, {"benefit_type": "fitness", "base_amount": "1"})
    assert resp.status_code == 409


async def test_wedding_uses_fixed_amount(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    data = await _submit_ok(async_client, employee, {"benefit_type": "wedding"})
    assert D(data["base_amount"]) == D("3000")
    assert await _remaining(async_client, employee, "wedding") == D("0")


async def test_uncapped_advance(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    data = await _submit_ok(async_client, employee, {"benefit_type": "advance", "base_amount": "50000"})
    assert D(data["net_amount"]) == D("50000")
    assert await _remaining(async_client, employee, "advance") is None


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


async def test_full_approval_consumes_budget(
    async_client: AsyncClient, employee: EmployeeInfo, notifications: InMemoryNotificationService
) -> None:
    request_id = (await _submit_ok(async_client, employee, _medical("400")))["id"]

    data = await _approve_through(async_client, request_id, "manager", "hr", "accounting")
    assert data["status"] == "approved"
    assert data["decided_at"] is not None

    balances = await async_client.get(f"/employees/{employee.id}/budgets", headers=_headers(employee.id))
    medical = next(item for item in balances.json()["items"] if item["pool_key"] == "medical")
    assert D(medical["held"]) == D("0")
    assert D(medical["used"]) == D("400")
    assert D(medical["remaining"]) == D("600")

    stages = await async_client.get(f"/requests/{request_id}/stages", headers=_headers(employee.id))
    assert [s["role"] for s in stages.json()["items"]] == ["manager", "hr", "accounting"]
    assert stages.json()["items"][0]["signature_ref"] == "sig-manager"
    assert [e.new_status for e in notifications.events] == [
        "pending_manager",
        "pending_hr",
        "pending_accounting",
        "approved",
    ]


async def test_audit_log_records_the_acting_role(
    async_client: AsyncClient, db_session: AsyncSession, employee: EmployeeInfo
) -> None:
    request_id = (await _submit_ok(async_client, employee, _medical("400")))["id"]
    await _approve_through(async_client, request_id, "manager", "hr")

    result = await db_session.execute(
        select(AuditLog).where(col(AuditLog.entity_id) == request_id).order_by(col(AuditLog.created_at))
    )
    entries = list(result.scalars().all())
    assert [(e.action, e.actor_role) for e in entries] == [
        ("SUBMIT", "employee"),
        ("APPROVE", "manager"),
        ("APPROVE", "hr"),
    ]
    assert entries[0].actor_id == employee.id
    assert entries[1].actor_id == APPROVER_ID


async def test_manager_rejection_restores_budget(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    request_id = (await _submit_ok(async_client, employee, _medical("400")))["id"]

    resp = await _decide(async_client, request_id, "manager", "reject")
    assert resp.status_code == 200
    assert resp.json()["status"] == "rejected_manager"
    assert await _remaining(async_client, employee, "medical") == D("1000")

    stages = await async_client.get(f"/requests/{request_id}/stages", headers=_headers(employee.id))
    assert stages.json()["total"] == 1
    assert stages.json()["items"][0]["stage"] == "pending_manager"
    assert stages.json()["items"][0]["decision"] == "reject"


async def test_rejection_at_accounting_restores_budget(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    request_id = (await _submit_ok(async_client, employee, _medical("250")))["id"]
    await _approve_through(async_client, request_id, "manager", "hr")

    resp = await _decide(async_client, request_id, "accounting", "reject")
    assert resp.json()["status"] == "rejected_accounting"
    assert await _remaining(async_client, employee, "medical") == D("1000")


async def test_wrong_role_for_stage(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    request_id = (await _submit_ok(async_client, employee, _medical("100")))["id"]

    resp = await _decide(async_client, request_id, "hr")
    assert resp.status_code == 409
    assert resp.json()["error"] == "WrongStage"


async def test_decision_on_terminal_request(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    request_id = (await _submit_ok(async_client, employee, _medical("100")))["id"]
    await _decide(async_client, request_id, "manager", "reject")

    resp = await _decide(async_client, request_id, "manager")
    assert resp.status_code == 409
    assert resp.json()["error"] == "AlreadyTerminal"


async def test_non_approver_role_cannot_decide(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    request_id = (await _submit_ok(async_client, employee, _medical("100")))["id"]

    resp = await _decide(async_client, request_id, "employee")
    assert resp.status_code == 403


async def test_approver_cannot_decide_own_request(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    request_id = (await _submit_ok(async_client, employee, _medical("100")))["id"]

    resp = await async_client.post(
        f"/requests/{request_id}/decision",
        json={"decision": "approve"},
        headers=_headers(employee.id, "manager"),
    )
    assert resp.status_code == 403

    resp = await async_client.get(f"/requests/{request_id}", headers=_headers(employee.id))
    assert resp.json()["status"] == "pending_manager"


async def test_large_internal_training_goes_to_special_approver(
    async_client: AsyncClient, employee: EmployeeInfo
) -> None:
    payload = {
        "benefit_type": "internal_training",
        "course_name": "Leadership",
        "total_participants": 25,
        "instructor_fee": "9000",
        "instructor_fee_vat": "630",
        "room_food_beverage": "1000",
    }
    data = await _submit_ok(async_client, employee, payload)
    assert D(data["net_amount"]) == D("10630")
    assert data["payload"]["cost_per_participant"] == "425.20"

    data = await _approve_through(async_client, data["id"], "manager", "hr")
    assert data["status"] == "pending_special"
    data = await _approve_through(async_client, data["id"], "special_approver")
    assert data["status"] == "pending_accounting"


async def test_small_internal_training_skips_special_approver(
    async_client: AsyncClient, employee: EmployeeInfo
) -> None:
    data = await _submit_ok(async_client, employee, {"benefit_type": "internal_training", "instructor_fee": "2000"})
    data = await _approve_through(async_client, data["id"], "manager", "hr")
    assert data["status"] == "pending_accounting"


# ---------------------------------------------------------------------------
# Edit
# ---------------------------------------------------------------------------


async def test_edit_rereserves_budget(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    request_id = (await _submit_ok(async_client, employee, _medical("400")))["id"]

    resp = await async_client.patch(
        f"/requests/{request_id}", json={"payload": _medical("700")}, headers=_headers(employee.id)
    )
    assert resp.status_code == 200
    assert D(resp.json()["net_amount"]) == D("700")
    assert await _remaining(async_client, employee, "medical") == D("300")


async def test_failed_edit_keeps_original_reservation(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    request_id = (await _submit_ok(async_client, employee, _medical("700")))["id"]

    resp = await async_client.patch(
        f"/requests/{request_id}", json={"payload": _medical("1000.01")}, headers=_headers(employee.id)
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "InsufficientBudget"

    assert await _remaining(async_client, employee, "medical") == D("300")
    current = await async_client.get(f"/requests/{request_id}", headers=_headers(employee.id))
    assert D(current.json()["net_amount"]) == D("700")


async def test_edit_up_to_full_budget_counts_own_hold(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    request_id = (await _submit_ok(async_client, employee, _medical("700")))["id"]

    resp = await async_client.patch(
        f"/requests/{request_id}", json={"payload": _medical("1000")}, headers=_headers(employee.id)
    )
    assert resp.status_code == 200
    assert await _remaining(async_client, employee, "medical") == D("0")


async def test_edit_after_manager_approval_is_not_allowed(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    request_id = (await _submit_ok(async_client, employee, _medical("400")))["id"]
    await _approve_through(async_client, request_id, "manager")

    resp = await async_client.patch(
        f"/requests/{request_id}", json={"payload": _medical("100")}, headers=_headers(employee.id)
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "NotEditable"


async def test_edit_cannot_change_benefit_type(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    request_id = (await _submit_ok(async_client, employee, _medical("400")))["id"]

    resp = await async_client.patch(
        f"/requests/{request_id}",
        json={"payload": {"benefit_type": "dental", "base_amount": "400"}},
        headers=_headers(employee.id),
    )
    assert resp.status_code == 400


async def test_edit_by_someone_else_is_forbidden(
    async_client: AsyncClient, employee: EmployeeInfo, other_employee: EmployeeInfo
) -> None:
    request_id = (await _submit_ok(async_client, employee, _medical("400")))["id"]

    resp = await async_client.patch(
        f"/requests/{request_id}", json={"payload": _medical("100")}, headers=_headers(other_employee.id)
    )
    assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------


async def test_cancel_returns_budget(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    request_id = (await _submit_ok(async_client, employee, _medical("400")))["id"]

    resp = await async_client.post(f"/requests/{request_id}/cancel", headers=_headers(employee.id))
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert await _remaining(async_client, employee, "medical") == D("1000")

    again = await async_client.post(f"/requests/{request_id}/cancel", headers=_headers(employee.id))
    assert again.status_code == 409
    assert again.json()["error"] == "AlreadyTerminal"


async def test_cancel_after_manager_is_not_allowed(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    request_id = (await _submit_ok(async_client, employee, _medical("400")))["id"]
    await _approve_through(async_client, request_id, "manager")

    resp = await async_client.post(f"/requests/{request_id}/cancel", headers=_headers(employee.id))
    assert resp.status_code == 409
    assert resp.json()["error"] == "NotEditable"


# ---------------------------------------------------------------------------
# Training
# ---------------------------------------------------------------------------


async def test_training_over_budget_is_split(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    data = await _submit_ok(
        async_client,
        employee,
        {"benefit_type": "training", "base_amount": "12000", "vat_amount": "840", "withholding_amount": "360"},
    )
    assert D(data["net_amount"]) == D("12480")
    assert D(data["excess_amount"]) == D("2840")
    assert D(data["company_share"]) == D("1420")
    assert D(data["employee_share"]) == D("1420")
    assert await _remaining(async_client, employee, "training") == D("0")


async def test_training_within_budget_has_no_split(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    data = await _submit_ok(async_client, employee, {"benefit_type": "training", "base_amount": "3000"})
    assert D(data["excess_amount"]) == D("0")
    assert D(data["employee_share"]) == D("0")
    assert await _remaining(async_client, employee, "training") == D("7000")


async def test_training_requires_tenure(async_client: AsyncClient, new_hire: EmployeeInfo) -> None:
    resp = await _submit(async_client, new_hire, {"benefit_type": "training", "base_amount": "1000"})
    assert resp.status_code == 422
    assert resp.json()["error"] == "NotEligible"


# ---------------------------------------------------------------------------
# Lifetime usage
# ---------------------------------------------------------------------------


async def test_childbirth_slots(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    twins = {"benefit_type": "childbirth", "children": [{"birth_type": "natural"}, {"birth_type": "caesarean"}]}
    data = await _submit_ok(async_client, employee, twins)
    assert D(data["base_amount"]) == D("10000")

    usage = await async_client.get(f"/employees/{employee.id}/usage/childbirth", headers=_headers(employee.id))
    assert usage.json()["count"] == 2
    assert usage.json()["cap"] == 3

    resp = await _submit(async_client, employee, twins)
    assert resp.status_code == 409
    assert resp.json()["error"] == "CapExceeded"

    await _decide(async_client, data["id"], "manager", "reject")
    usage = await async_client.get(f"/employees/{employee.id}/usage/childbirth", headers=_headers(employee.id))
    assert usage.json()["count"] == 0


async def test_funeral_relation_claimed_once(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    data = await _submit_ok(async_client, employee, {"benefit_type": "funeral", "relation": "parent"})
    assert D(data["base_amount"]) == D("5000")

    resp = await _submit(async_client, employee, {"benefit_type": "funeral", "relation": "parent"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "AlreadyClaimed"

    await _submit_ok(async_client, employee, {"benefit_type": "funeral", "relation": "child"})


# ---------------------------------------------------------------------------
# Expense clearing
# ---------------------------------------------------------------------------


def _clearing(advance_id: str, **line: str) -> dict[str, Any]:
    item = {"category": "travel", "tax_rate": "3", "request_amount": "1000", "used_amount": "800", "vat_amount": "56"}
    item.update(line)
    return {"benefit_type": "expense_clearing", "advance_request_id": advance_id, "line_items": [item]}


async def test_expense_clearing_reconciles_advance(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    advance = await _submit_ok(async_client, employee, {"benefit_type": "advance", "base_amount": "1000"})
    await _approve_through(async_client, advance["id"], "manager", "hr", "accounting")

    data = await _submit_ok(async_client, employee, _clearing(advance["id"]))
    assert D(data["net_amount"]) == D("832")
    assert D(data["withholding_amount"]) == D("24")
    assert D(data["refund_amount"]) == D("168")
    assert data["advance_request_id"] == advance["id"]
    assert data["payload"]["reconciliation"]["total_refund"] == "168.00"

    again = await _submit(async_client, employee, _clearing(advance["id"]))
    assert again.status_code == 409


async def test_clearing_requires_approved_advance(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    advance = await _submit_ok(async_client, employee, {"benefit_type": "advance", "base_amount": "1000"})

    resp = await _submit(async_client, employee, _clearing(advance["id"]))
    assert resp.status_code == 400


async def test_clearing_someone_elses_advance(
    async_client: AsyncClient, employee: EmployeeInfo, other_employee: EmployeeInfo
) -> None:
    advance = await _submit_ok(async_client, other_employee, {"benefit_type": "advance", "base_amount": "1000"})

    resp = await _submit(async_client, employee, _clearing(advance["id"]))
    assert resp.status_code == 404


async def test_invalid_line_item_creates_nothing(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    advance = await _submit_ok(async_client, employee, {"benefit_type": "advance", "base_amount": "1000"})
    await _approve_through(async_client, advance["id"], "manager", "hr", "accounting")

    resp = await _submit(async_client, employee, _clearing(advance["id"], tax_rate="150"))
    assert resp.status_code == 422
    assert resp.json()["error"] == "InvalidLineItem"
    assert "Line item 0" in resp.json()["detail"]

    listing = await async_client.get(
        "/requests", params={"benefit_type": "expense_clearing"}, headers=_headers(employee.id)
    )
    assert listing.json()["total"] == 0


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def test_employees_only_see_their_own_requests(
    async_client: AsyncClient, employee: EmployeeInfo, other_employee: EmployeeInfo
) -> None:
    mine = await _submit_ok(async_client, employee, _medical("100"))
    await _submit_ok(async_client, other_employee, _medical("100"))

    listing = await async_client.get("/requests", headers=_headers(employee.id))
    assert [item["id"] for item in listing.json()["items"]] == [mine["id"]]

    hidden = await async_client.get(f"/requests/{mine['id']}", headers=_headers(other_employee.id))
    assert hidden.status_code == 404

    reviewer = await async_client.get("/requests", headers=_headers(APPROVER_ID, "hr"))
    assert reviewer.json()["total"] == 2


async def test_list_filters_by_status(async_client: AsyncClient, employee: EmployeeInfo) -> None:
    first = await _submit_ok(async_client, employee, _medical("100"))
    await _submit_ok(async_client, employee, _medical("100"))
    await _decide(async_client, first["id"], "manager", "reject")

    resp = await async_client.get("/requests", params={"status": "rejected_manager"}, headers=_headers(employee.id))
    assert resp.json()["total"] == 1
    assert resp.json()["items"][0]["id"] == first["id"]


async def test_budget_of_another_employee_is_forbidden(
    async_client: AsyncClient, employee: EmployeeInfo, other_employee: EmployeeInfo
) -> None:
    resp = await async_client.get(f"/employees/{other_employee.id}/budgets", headers=_headers(employee.id))
    assert resp.status_code == 403


@pytest.mark.parametrize(("role", "expected"), [("intern", 403), ("contractor", 403), ("hr", 200), ("accounting", 200)])
async def test_only_reviewer_roles_see_other_budgets(
    async_client: AsyncClient, employee: EmployeeInfo, other_employee: EmployeeInfo, role: str, expected: int
) -> None:
    resp = await async_client.get(f"/employees/{other_employee.id}/budgets", headers=_headers(employee.id, role))
    assert resp.status_code == expected


async def test_unknown_role_lists_only_own_requests(
    async_client: AsyncClient, employee: EmployeeInfo, other_employee: EmployeeInfo
) -> None:
    await _submit_ok(async_client, other_employee, _medical("100"))

    resp = await async_client.get("/requests", headers=_headers(employee.id, "intern"))
    assert resp.status_code == 200
    assert resp.json()["total"] == 0


@pytest.mark.parametrize("role", ["admin", "hr"])
async def test_rollover_trigger_is_admin_only(async_client: AsyncClient, role: str) -> None:
    resp = await async_client.post("/budgets/rollover", headers=_headers(APPROVER_ID, role))
    if role == "admin":
        assert resp.status_code == 200
        assert resp.json()["opened"] == 0
    else:
        assert resp.status_code == 403
