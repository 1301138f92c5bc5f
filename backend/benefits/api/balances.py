# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Query

from benefits.api.deps import AdminDep, EmployeeDep
from benefits.db import SessionDep
from benefits.models.enums import BenefitType
from benefits.schemas.balance import (
    BalanceListResponse,
    RemainingBudgetResponse,
    RolloverRunResponse,
    UsageResponse,
)
from benefits.services import catalog, ledger, usage

employee_budget_router = APIRouter(
    prefix="/employees/{employee_id}",
    tags=["budgets"],
)

rollover_router = APIRouter(
    prefix="/budgets",
    tags=["budgets"],
)


@employee_budget_router.get("/budgets", response_model=BalanceListResponse)
async def list_budgets(
    employee: EmployeeDep,
    session: SessionDep,
) -> BalanceListResponse:
    """Current-period balance of every capped pool for an employee."""
    return await ledger.list_balances(session, employee)


@employee_budget_router.get("/budgets/{benefit_type}", response_model=RemainingBudgetResponse)
async def get_remaining_budget(
    benefit_type: BenefitType,
    employee: EmployeeDep,
    session: SessionDep,
) -> RemainingBudgetResponse:
    """Remaining budget for one benefit type; null for uncapped types."""
    policy = catalog.policy_for(benefit_type)
    remaining = await ledger.remaining(session, employee, benefit_type)
    return RemainingBudgetResponse(
        employee_id=employee.id,
        benefit_type=benefit_type,
        pool_key=catalog.pool_key_for(benefit_type) if policy.is_budgeted else None,
        period_start=ledger.period_start_for(policy.period, date.today()) if policy.is_budgeted else None,
        remaining=remaining,
    )


@employee_budget_router.get("/usage/{benefit_type}", response_model=UsageResponse)
async def get_usage(
    benefit_type: BenefitType,
    employee: EmployeeDep,
    session: SessionDep,
) -> UsageResponse:
    """Lifetime usage of a count- or category-capped benefit."""
    return await usage.get_usage(session, employee.id, benefit_type)


@rollover_router.post("/rollover", response_model=RolloverRunResponse)
async def trigger_rollover(
    session: SessionDep,
    _auth: AdminDep,
    target_date: date | None = Query(default=None),
) -> RolloverRunResponse:
    """Manually run the period rollover for a date (admin only).

    Useful for testing and backfills; the worker runs the same job daily.
    """
    result = await ledger.rollover_periods(session, target_date or date.today())
    return RolloverRunResponse(target_date=result.target_date, opened=result.opened, skipped=result.skipped)
