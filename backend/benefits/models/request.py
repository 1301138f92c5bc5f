# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from benefits.models.base import TimestampMixin, UUIDBase, money_field
from benefits.models.enums import RequestStatus


class BenefitRequest(UUIDBase, TimestampMixin, table=True):
    """An employee's benefit request with amounts, reservation and workflow state."""

    __tablename__ = "benefit_request"
    __table_args__ = (sa.Index("ix_request_employee_type", "employee_id", "benefit_type"),)

    employee_id: uuid.UUID = Field(index=True)
    benefit_type: str = Field(max_length=50, index=True)
    base_amount: Decimal = money_field()
    vat_amount: Decimal = money_field()
    withholding_amount: Decimal = money_field()
    net_amount: Decimal = money_field()
    excess_amount: Decimal = money_field()
    company_share: Decimal = money_field()
    employee_share: Decimal = money_field()
    refund_amount: Decimal = money_field()
    status: str = Field(
        default=RequestStatus.DRAFT, max_length=50, index=True, sa_column_kwargs={"server_default": "draft"}
    )
    payload_json: dict[str, Any] = Field(default_factory=dict, sa_type=sa.JSON)
    advance_request_id: uuid.UUID | None = Field(default=None, index=True)
    document_ref: str | None = Field(default=None, max_length=255)
    submitted_at: datetime | None = Field(
        default=None,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
    )
    decided_at: datetime | None = Field(
        default=None,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
    )

    # What this request currently holds; cleared on release so releasing twice is a no-op.
    reserved_pool: str | None = Field(default=None, max_length=50)
    reserved_period_start: date | None = None
    reserved_amount: Decimal = money_field()
    reserved_count: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    reserved_category: str | None = Field(default=None, max_length=50)
