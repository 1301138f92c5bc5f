"""Budget ledger: the authoritative remaining budget per employee, pool and period.

Every change locks the balance row (SELECT ... FOR UPDATE), appends a ledger
entry explaining it, and recomputes remaining = entitlement - used - held in
the caller's transaction. Capacity is checked before anything is mutated, so a
failed reservation leaves no trace.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from benefits.config import get_settings
from benefits.exceptions import InsufficientBudget, ReservationConflict
from benefits.models.balance import BudgetBalance
from benefits.models.enums import (
    AuditAction,
    AuditEntityType,
    BenefitType,
    BenefitVariant,
    LedgerEntryType,
    LedgerSourceType,
    LimitPeriod,
)
from benefits.models.ledger import BudgetLedgerEntry
from benefits.schemas.balance import BalanceListResponse, BalanceResponse
from benefits.services import catalog
from benefits.services.amounts import ZERO, BudgetSplit, compute_with_budget_split, round_money
from benefits.services.audit import model_to_audit_dict, write_audit_log

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from benefits.schemas.catalog import BenefitLimitPolicy
    from benefits.services.employee import EmployeeInfo

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = uuid.UUID(int=0)


@dataclass(frozen=True)
class Reservation:
    """What a request holds against one balance row."""

    pool_key: str
    period_start: date
    amount: Decimal


@dataclass
class RolloverRunResult:
    """Result of a period rollover run."""

    target_date: date
    opened: int = 0
    skipped: int = 0


# ---------------------------------------------------------------------------
# Periods and entitlements
# ---------------------------------------------------------------------------


def period_start_for(period: LimitPeriod, on: date) -> date:
    """Start of the budget period containing `on`.

    Annual periods run from the configured anchor date; monthly periods
    follow the calendar month.
    """
    if period == LimitPeriod.MONTHLY:
        return on.replace(day=1)
    if period == LimitPeriod.ANNUAL:
        settings = get_settings()
        anchor = date(on.year, settings.budget_year_start_month, settings.budget_year_start_day)
        if on >= anchor:
            return anchor
        return anchor.replace(year=on.year - 1)
    msg = f"{period.value} is not a budget period"
    raise ValueError(msg)


def entitlement_for(employee: EmployeeInfo, policy: BenefitLimitPolicy) -> Decimal:
    """Per-period entitlement: the HR directory figure, else the catalog cap."""
    pool_key = catalog.pool_key_for(policy.benefit_type)
    value = employee.budgets.get(pool_key, policy.cap)
    return round_money(value if value is not None else ZERO)


def _budgeted_policy(benefit_type: BenefitType | str) -> BenefitLimitPolicy | None:
    policy = catalog.policy_for(benefit_type)
    return policy if policy.is_budgeted else None


def _policy_for_pool(pool_key: str) -> BenefitLimitPolicy:
    if pool_key == catalog.DENTAL_GLASSES_POOL:
        return catalog.policy_for(BenefitType.DENTAL)
    return catalog.policy_for(pool_key)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _build_balance_response(balance: BudgetBalance, period: LimitPeriod) -> BalanceResponse:
    return BalanceResponse(
        pool_key=balance.pool_key,
        period=period,
        period_start=balance.period_start,
        entitlement=balance.entitlement,
        held=balance.held,
        used=balance.used,
        remaining=balance.remaining,
        updated_at=balance.updated_at,
    )


def _recompute(balance: BudgetBalance) -> None:
    balance.remaining = round_money(balance.entitlement - balance.used - balance.held)
    balance.version += 1
    balance.updated_at = datetime.now(UTC)


async def _read_balance(
    session: AsyncSession,
    employee_id: uuid.UUID,
    pool_key: str,
    period_start: date,
) -> BudgetBalance | None:
    result = await session.execute(
        select(BudgetBalance).where(
            col(BudgetBalance.employee_id) == employee_id,
            col(BudgetBalance.pool_key) == pool_key,
            col(BudgetBalance.period_start) == period_start,
        )
    )
    return result.scalar_one_or_none()


async def _get_balance_for_update(
    session: AsyncSession,
    employee_id: uuid.UUID,
    pool_key: str,
    period_start: date,
) -> BudgetBalance | None:
    result = await session.execute(
        select(BudgetBalance)
        .where(
            col(BudgetBalance.employee_id) == employee_id,
            col(BudgetBalance.pool_key) == pool_key,
            col(BudgetBalance.period_start) == period_start,
        )
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def _get_or_create_balance_for_update(
    session: AsyncSession,
    employee: EmployeeInfo,
    policy: BenefitLimitPolicy,
    period_start: date,
) -> BudgetBalance:
    """Lock the period's balance row, opening it at full entitlement if absent."""
    pool_key = catalog.pool_key_for(policy.benefit_type)
    balance = await _get_balance_for_update(session, employee.id, pool_key, period_start)
    if balance is not None:
        return balance

    entitlement = entitlement_for(employee, policy)
    balance = BudgetBalance(
        employee_id=employee.id,
        pool_key=pool_key,
        period_start=period_start,
        entitlement=entitlement,
        remaining=entitlement,
    )
    session.add(balance)
    try:
        await session.flush()
    except IntegrityError:
        # Another writer opened the same period first.
        await session.rollback()
        logger.warning("Balance row race for employee=%s pool=%s", employee.id, pool_key)
        raise ReservationConflict from None
    return balance


def _post_entry(
    session: AsyncSession,
    balance: BudgetBalance,
    entry_type: LedgerEntryType,
    amount: Decimal,
    source_id: str,
    source_type: LedgerSourceType = LedgerSourceType.REQUEST,
    metadata_json: dict[str, Any] | None = None,
) -> BudgetLedgerEntry:
    entry = BudgetLedgerEntry(
        employee_id=balance.employee_id,
        pool_key=balance.pool_key,
        period_start=balance.period_start,
        entry_type=entry_type.value,
        amount=amount,
        source_type=source_type.value,
        source_id=source_id,
        metadata_json=metadata_json,
    )
    session.add(entry)
    return entry


def _hold(balance: BudgetBalance, amount: Decimal, source_id: str, session: AsyncSession) -> Reservation:
    if amount > 0:
        _post_entry(session, balance, LedgerEntryType.HOLD, -amount, source_id)
        balance.held = round_money(balance.held + amount)
        _recompute(balance)
    return Reservation(pool_key=balance.pool_key, period_start=balance.period_start, amount=amount)


def _unhold(balance: BudgetBalance, amount: Decimal, source_id: str, session: AsyncSession) -> None:
    if amount > 0:
        _post_entry(session, balance, LedgerEntryType.HOLD_RELEASE, amount, source_id)
        balance.held = round_money(balance.held - amount)
        _recompute(balance)


async def _lock_with_credit(
    session: AsyncSession,
    employee: EmployeeInfo,
    policy: BenefitLimitPolicy,
    previous: Reservation | None,
    on: date,
) -> tuple[BudgetBalance, BudgetBalance | None, Decimal]:
    """Lock the current balance (and the previous one if it lives elsewhere).

    Returns (current, previous_row, available) where available already counts
    the amount the previous reservation would give back to the current row.
    Nothing is mutated.
    """
    period_start = period_start_for(policy.period, on)
    current = await _get_or_create_balance_for_update(session, employee, policy, period_start)

    previous_row: BudgetBalance | None = None
    credit = ZERO
    if previous is not None and previous.amount > 0:
        if (previous.pool_key, previous.period_start) == (current.pool_key, current.period_start):
            previous_row = current
            credit = previous.amount
        else:
            previous_row = await _get_balance_for_update(
                session, employee.id, previous.pool_key, previous.period_start
            )
    return current, previous_row, round_money(current.remaining + credit)


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------


async def remaining(
    session: AsyncSession,
    employee: EmployeeInfo,
    benefit_type: BenefitType | str,
    on: date | None = None,
) -> Decimal | None:
    """Current remaining budget of the type's pool, or None for uncapped types.

    Pooled types report the shared balance whichever member is queried.
    """
    policy = _budgeted_policy(benefit_type)
    if policy is None:
        return None
    period_start = period_start_for(policy.period, on or date.today())
    balance = await _read_balance(session, employee.id, catalog.pool_key_for(policy.benefit_type), period_start)
    if balance is None:
        return entitlement_for(employee, policy)
    return balance.remaining


async def list_balances(
    session: AsyncSession,
    employee: EmployeeInfo,
    on: date | None = None,
) -> BalanceListResponse:
    """Current-period balance of every capped pool for an employee."""
    on = on or date.today()
    seen: set[str] = set()
    items: list[BalanceResponse] = []
    for policy in catalog.list_policies():
        if not policy.is_budgeted:
            continue
        pool_key = catalog.pool_key_for(policy.benefit_type)
        if pool_key in seen:
            continue
        seen.add(pool_key)

        period_start = period_start_for(policy.period, on)
        balance = await _read_balance(session, employee.id, pool_key, period_start)
        if balance is None:
            entitlement = entitlement_for(employee, policy)
            balance = BudgetBalance(
                employee_id=employee.id,
                pool_key=pool_key,
                period_start=period_start,
                entitlement=entitlement,
                remaining=entitlement,
            )
            items.append(_build_balance_response(balance, policy.period).model_copy(update={"updated_at": None}))
        else:
            items.append(_build_balance_response(balance, policy.period))

    return BalanceListResponse(items=items, total=len(items))


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------


async def rereserve(
    session: AsyncSession,
    employee: EmployeeInfo,
    benefit_type: BenefitType | str,
    amount: Decimal,
    source_id: str,
    previous: Reservation | None = None,
    on: date | None = None,
) -> Reservation | None:
    """Release `previous` and reserve `amount` as one unit.

    The capacity check counts what `previous` gives back, and runs before
    either step is applied: on InsufficientBudget the original hold is left
    untouched. Returns None for uncapped types.
    """
    policy = _budgeted_policy(benefit_type)
    if policy is None:
        return None
    if policy.variant == BenefitVariant.BUDGET_SPLIT:
        reservation, _ = await rereserve_training(
            session, employee, amount, ZERO, ZERO, source_id, previous=previous, on=on
        )
        return reservation

    amount = round_money(amount)
    current, previous_row, available = await _lock_with_credit(session, employee, policy, previous, on or date.today())
    if amount > available:
        msg = f"Insufficient {current.pool_key} budget: requested {amount}, remaining {available}"
        raise InsufficientBudget(msg)

    if previous is not None and previous_row is not None:
        _unhold(previous_row, previous.amount, source_id, session)
    return _hold(current, amount, source_id, session)


async def reserve(
    session: AsyncSession,
    employee: EmployeeInfo,
    benefit_type: BenefitType | str,
    amount: Decimal,
    source_id: str,
    on: date | None = None,
) -> Reservation | None:
    """Atomically check and hold `amount`; InsufficientBudget leaves no side effect.

    Training never fails here: only the in-budget part is held.
    """
    return await rereserve(session, employee, benefit_type, amount, source_id, on=on)


async def rereserve_training(
    session: AsyncSession,
    employee: EmployeeInfo,
    base: Decimal,
    vat: Decimal,
    withholding: Decimal,
    source_id: str,
    previous: Reservation | None = None,
    on: date | None = None,
) -> tuple[Reservation, BudgetSplit]:
    """Split the training cost against the locked remaining budget and hold the in-budget part."""
    policy = catalog.policy_for(BenefitType.TRAINING)
    current, previous_row, available = await _lock_with_credit(session, employee, policy, previous, on or date.today())
    split = compute_with_budget_split(base, vat, withholding, available)

    if previous is not None and previous_row is not None:
        _unhold(previous_row, previous.amount, source_id, session)
    return _hold(current, split.in_budget, source_id, session), split


async def reserve_training(
    session: AsyncSession,
    employee: EmployeeInfo,
    base: Decimal,
    vat: Decimal,
    withholding: Decimal,
    source_id: str,
    on: date | None = None,
) -> tuple[Reservation, BudgetSplit]:
    return await rereserve_training(session, employee, base, vat, withholding, source_id, on=on)


async def release(
    session: AsyncSession,
    employee_id: uuid.UUID,
    reservation: Reservation | None,
    source_id: str,
) -> None:
    """Give a held amount back to the row it was taken from."""
    if reservation is None or reservation.amount <= 0:
        return
    balance = await _get_balance_for_update(session, employee_id, reservation.pool_key, reservation.period_start)
    if balance is None:
        logger.warning(
            "No balance row to release into: employee=%s pool=%s period=%s",
            employee_id,
            reservation.pool_key,
            reservation.period_start,
        )
        return
    _unhold(balance, reservation.amount, source_id, session)


async def consume(
    session: AsyncSession,
    employee_id: uuid.UUID,
    reservation: Reservation | None,
    source_id: str,
) -> None:
    """Convert a hold into usage on final approval; remaining is unchanged."""
    if reservation is None or reservation.amount <= 0:
        return
    balance = await _get_balance_for_update(session, employee_id, reservation.pool_key, reservation.period_start)
    if balance is None:
        logger.warning("No balance row to consume from: employee=%s pool=%s", employee_id, reservation.pool_key)
        return
    _post_entry(session, balance, LedgerEntryType.HOLD_RELEASE, reservation.amount, source_id)
    _post_entry(session, balance, LedgerEntryType.USAGE, -reservation.amount, source_id)
    balance.held = round_money(balance.held - reservation.amount)
    balance.used = round_money(balance.used + reservation.amount)
    _recompute(balance)


# ---------------------------------------------------------------------------
# Batch: period rollover
# ---------------------------------------------------------------------------


async def rollover_periods(session: AsyncSession, today: date) -> RolloverRunResult:
    """Open the current period for every balance whose last period has ended.

    The new period starts at the previous entitlement with nothing held or
    used. Holds of still-pending requests stay on the period they were taken
    from. Idempotent: pools that already have a current row are skipped.
    """
    run = RolloverRunResult(target_date=today)

    result = await session.execute(
        select(BudgetBalance).order_by(
            col(BudgetBalance.employee_id), col(BudgetBalance.pool_key), col(BudgetBalance.period_start).desc()
        )
    )
    latest: dict[tuple[uuid.UUID, str], BudgetBalance] = {}
    for balance in result.scalars().all():
        latest.setdefault((balance.employee_id, balance.pool_key), balance)

    for (employee_id, pool_key), balance in latest.items():
        period_start = period_start_for(_policy_for_pool(pool_key).period, today)
        if balance.period_start >= period_start:
            run.skipped += 1
            continue

        opened = BudgetBalance(
            employee_id=employee_id,
            pool_key=pool_key,
            period_start=period_start,
            entitlement=balance.entitlement,
            remaining=balance.entitlement,
        )
        session.add(opened)
        _post_entry(
            session,
            opened,
            LedgerEntryType.RESET,
            opened.entitlement,
            source_id=f"rollover:{period_start.isoformat()}",
            source_type=LedgerSourceType.SYSTEM,
            metadata_json={"previous_period_start": balance.period_start.isoformat()},
        )
        await session.flush()
        await write_audit_log(
            session,
            actor_id=SYSTEM_ACTOR,
            actor_role="system",
            entity_type=AuditEntityType.BUDGET,
            entity_id=f"{employee_id}:{pool_key}:{period_start.isoformat()}",
            action=AuditAction.RESET,
            before_json=model_to_audit_dict(balance),
            after_json=model_to_audit_dict(opened),
        )
        run.opened += 1

    await session.commit()
    logger.info("Rollover for %s: opened=%d skipped=%d", today, run.opened, run.skipped)
    return run
