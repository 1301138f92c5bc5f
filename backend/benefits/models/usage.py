# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import UTC, datetime

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


def _now_utc() -> datetime:
    return datetime.now(UTC)


class UsageCounter(SQLModel, table=True):
    """Lifetime usage of a count-capped or category-capped benefit."""

    __tablename__ = "usage_counter"
    __table_args__ = (sa.PrimaryKeyConstraint("employee_id", "benefit_type"),)

    employee_id: uuid.UUID = Field(index=True)
    benefit_type: str = Field(max_length=50)
    count: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    categories: list[str] = Field(default_factory=list, sa_type=sa.JSON)
    updated_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=_now_utc,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.func.now(), "onupdate": sa.func.now()},
    )
    version: int = Field(default=1, sa_column_kwargs={"server_default": "1"})
