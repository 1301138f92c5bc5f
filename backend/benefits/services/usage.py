"""Lifetime usage tracking for count-capped and category-capped benefits.

Slots are taken when a request is submitted and given back when it is
rejected or cancelled. As with the budget ledger, every check runs against a
locked counter row before anything changes.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from benefits.exceptions import AlreadyClaimed, CapExceeded, ReservationConflict
from benefits.models.enums import BenefitType
from benefits.models.usage import UsageCounter
from benefits.schemas.balance import UsageResponse
from benefits.services import catalog

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


async def _get_counter(
    session: AsyncSession,
    employee_id: uuid.UUID,
    benefit_type: BenefitType,
    *,
    for_update: bool = False,
) -> UsageCounter | None:
    stmt = select(UsageCounter).where(
        col(UsageCounter.employee_id) == employee_id,
        col(UsageCounter.benefit_type) == benefit_type.value,
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def _get_or_create_counter_for_update(
    session: AsyncSession,
    employee_id: uuid.UUID,
    benefit_type: BenefitType,
) -> UsageCounter:
    counter = await _get_counter(session, employee_id, benefit_type, for_update=True)
    if counter is not None:
        return counter

    counter = UsageCounter(employee_id=employee_id, benefit_type=benefit_type.value)
    session.add(counter)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        logger.warning("Usage counter race for employee=%s type=%s", employee_id, benefit_type.value)
        raise ReservationConflict from None
    return counter


def _touch(counter: UsageCounter) -> None:
    counter.version += 1
    counter.updated_at = datetime.now(UTC)


def _cap_of(benefit_type: BenefitType) -> int:
    policy = catalog.policy_for(benefit_type)
    return int(policy.cap) if policy.cap is not None else 0


# ---------------------------------------------------------------------------
# Count-capped benefits
# ---------------------------------------------------------------------------


async def reserve_count_slot(
    session: AsyncSession,
    employee_id: uuid.UUID,
    benefit_type: BenefitType | str,
    requested: int,
    previous: int = 0,
) -> int:
    """Take `requested` lifetime slots, giving back `previous` first.

    Raises CapExceeded, leaving the counter untouched, if the total would pass
    the lifetime cap. Returns the new count.
    """
    benefit_type = BenefitType(benefit_type)
    cap = _cap_of(benefit_type)
    counter = await _get_or_create_counter_for_update(session, employee_id, benefit_type)

    projected = counter.count - previous + requested
    if projected > cap:
        available = max(cap - (counter.count - previous), 0)
        msg = f"{benefit_type.value} lifetime cap of {cap} reached: requested {requested}, available {available}"
        raise CapExceeded(msg)

    if projected != counter.count:
        counter.count = projected
        _touch(counter)
    return counter.count


async def release_count_slot(
    session: AsyncSession,
    employee_id: uuid.UUID,
    benefit_type: BenefitType | str,
    count: int,
) -> None:
    if count <= 0:
        return
    benefit_type = BenefitType(benefit_type)
    counter = await _get_counter(session, employee_id, benefit_type, for_update=True)
    if counter is None:
        logger.warning("No usage counter to release: employee=%s type=%s", employee_id, benefit_type.value)
        return
    counter.count = max(counter.count - count, 0)
    _touch(counter)


# ---------------------------------------------------------------------------
# Category-capped benefits
# ---------------------------------------------------------------------------


async def reserve_category_slot(
    session: AsyncSession,
    employee_id: uuid.UUID,
    benefit_type: BenefitType | str,
    category: str,
    previous: str | None = None,
) -> None:
    """Claim `category` once per lifetime, swapping out `previous` if given.

    Raises AlreadyClaimed without touching the counter when the category is
    already taken by another request.
    """
    benefit_type = BenefitType(benefit_type)
    counter = await _get_or_create_counter_for_update(session, employee_id, benefit_type)

    claimed = [c for c in counter.categories if c != previous]
    if category in claimed:
        msg = f"{benefit_type.value} for {category} has already been claimed"
        raise AlreadyClaimed(msg)

    # JSON columns only track reassignment.
    counter.categories = [*claimed, category]
    counter.count = len(counter.categories)
    _touch(counter)


async def release_category_slot(
    session: AsyncSession,
    employee_id: uuid.UUID,
    benefit_type: BenefitType | str,
    category: str | None,
) -> None:
    if category is None:
        return
    benefit_type = BenefitType(benefit_type)
    counter = await _get_counter(session, employee_id, benefit_type, for_update=True)
    if counter is None or category not in counter.categories:
        return
    counter.categories = [c for c in counter.categories if c != category]
    counter.count = len(counter.categories)
    _touch(counter)


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------


async def get_usage(
    session: AsyncSession,
    employee_id: uuid.UUID,
    benefit_type: BenefitType | str,
) -> UsageResponse:
    """Lifetime usage of a benefit; zero for employees who never claimed it."""
    policy = catalog.policy_for(benefit_type)
    counter = await _get_counter(session, employee_id, policy.benefit_type)
    return UsageResponse(
        employee_id=employee_id,
        benefit_type=policy.benefit_type,
        count=counter.count if counter else 0,
        cap=int(policy.cap) if policy.cap is not None else None,
        categories=list(counter.categories) if counter else [],
    )
