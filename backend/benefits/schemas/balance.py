# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel

from benefits.models.enums import BenefitType, LimitPeriod

# ---------------------------------------------------------------------------
# Budget response schemas
# ---------------------------------------------------------------------------


class RemainingBudgetResponse(BaseModel):
    """Remaining budget for one benefit type; None when the type is uncapped."""

    employee_id: uuid.UUID
    benefit_type: BenefitType
    pool_key: str | None
    period_start: date | None
    remaining: Decimal | None


class BalanceResponse(BaseModel):
    """Current-period balance of one budget pool."""

    pool_key: str
    period: LimitPeriod
    period_start: date
    entitlement: Decimal
    held: Decimal
    used: Decimal
    remaining: Decimal
    updated_at: datetime | None


class BalanceListResponse(BaseModel):
    """All budget pools for an employee."""

    items: list[BalanceResponse]
    total: int


class UsageResponse(BaseModel):
    """Lifetime usage of a count- or category-capped benefit."""

    employee_id: uuid.UUID
    benefit_type: BenefitType
    count: int
    cap: int | None
    categories: list[str]


class RolloverRunResponse(BaseModel):
    """Result of a period rollover run."""

    target_date: date
    opened: int
    skipped: int
