from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field


class ExpenseLineItemInput(BaseModel):
    """One actual-spend line reconciled against the advance."""

    category: str = Field(min_length=1, max_length=255)
    tax_rate: Decimal = Decimal("0")
    request_amount: Decimal = Decimal("0")
    used_amount: Decimal = Decimal("0")
    # Operator-entered VAT; ignored when the request uses system VAT.
    vat_amount: Decimal = Decimal("0")
    description: str | None = Field(default=None, max_length=1000)


class ExpenseLineItemResult(BaseModel):
    """A reconciled line: inputs plus derived tax, net and refund."""

    category: str
    tax_rate: Decimal
    request_amount: Decimal
    used_amount: Decimal
    vat_amount: Decimal
    tax_amount: Decimal
    net_amount: Decimal
    refund: Decimal
    description: str | None = None


class ReconciliationResult(BaseModel):
    """Per-line results and totals. A negative total_refund means the company owes the employee."""

    lines: list[ExpenseLineItemResult]
    total_request: Decimal
    total_used: Decimal
    total_vat: Decimal
    total_tax: Decimal
    total_net: Decimal
    total_refund: Decimal
