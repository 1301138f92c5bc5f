# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from benefits.models.base import money_field


def _now_utc() -> datetime:
    return datetime.now(UTC)


class BudgetBalance(SQLModel, table=True):
    """Authoritative remaining budget per employee, pool and period.

    Updated only under a row lock together with the ledger entry that explains the change.
    """

    __tablename__ = "budget_balance"
    __table_args__ = (sa.PrimaryKeyConstraint("employee_id", "pool_key", "period_start"),)

    employee_id: uuid.UUID = Field(index=True)
    pool_key: str = Field(max_length=50)
    period_start: date
    entitlement: Decimal = money_field()
    held: Decimal = money_field()
    used: Decimal = money_field()
    remaining: Decimal = money_field()
    updated_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=_now_utc,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.func.now(), "onupdate": sa.func.now()},
    )
    version: int = Field(default=1, sa_column_kwargs={"server_default": "1"})
