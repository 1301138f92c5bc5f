# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from benefits.models.base import MONEY, UUIDBase


def _now_utc() -> datetime:
    return datetime.now(UTC)


class BudgetLedgerEntry(UUIDBase, table=True):
    """Append-only ledger entry that records every balance-affecting event."""

    __tablename__ = "budget_ledger_entry"
    __table_args__ = (sa.Index("ix_ledger_employee_pool", "employee_id", "pool_key", "period_start"),)

    employee_id: uuid.UUID = Field(index=True)
    pool_key: str = Field(max_length=50)
    period_start: date
    entry_type: str = Field(max_length=50)
    # Signed: negative consumes budget, positive gives it back.
    amount: Decimal = Field(sa_type=MONEY)
    source_type: str = Field(max_length=50)
    source_id: str = Field(max_length=255)
    metadata_json: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
    created_at: datetime = Field(
        default_factory=_now_utc,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now()},
    )
