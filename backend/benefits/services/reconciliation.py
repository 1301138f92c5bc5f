"""Expense reconciliation: compare a cash advance against actual spend."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from benefits.exceptions import InvalidLineItem
from benefits.models.enums import VatMode
from benefits.schemas.reconciliation import ExpenseLineItemInput, ExpenseLineItemResult, ReconciliationResult
from benefits.services.amounts import ZERO, round_money

if TYPE_CHECKING:
    from collections.abc import Sequence

_HUNDRED = Decimal("100")


def _validate(index: int, item: ExpenseLineItemInput) -> None:
    if item.used_amount < 0:
        raise InvalidLineItem("used_amount must be >= 0", index=index)
    if item.request_amount < 0:
        raise InvalidLineItem("request_amount must be >= 0", index=index)
    if item.vat_amount < 0:
        raise InvalidLineItem("vat_amount must be >= 0", index=index)
    if not ZERO <= item.tax_rate <= _HUNDRED:
        raise InvalidLineItem("tax_rate must be between 0 and 100", index=index)


def resolve_vat(
    line_items: Sequence[ExpenseLineItemInput],
    vat_mode: VatMode,
    vat_rate: Decimal,
) -> list[ExpenseLineItemInput]:
    """Fill in VAT for the system-computed variant; manual VAT passes through."""
    if vat_mode == VatMode.MANUAL:
        return list(line_items)
    return [
        item.model_copy(update={"vat_amount": round_money(item.used_amount * vat_rate / _HUNDRED)})
        for item in line_items
    ]


def reconcile(line_items: Sequence[ExpenseLineItemInput]) -> ReconciliationResult:
    """Compute tax, net and refund per line and in aggregate.

    Every line is validated before anything is computed, so a bad line
    rejects the whole set. A positive total_refund is owed back to the
    company; a negative one is owed to the employee.
    """
    if not line_items:
        raise InvalidLineItem("At least one line item is required")
    for index, item in enumerate(line_items):
        _validate(index, item)

    lines: list[ExpenseLineItemResult] = []
    for item in line_items:
        tax_amount = round_money(item.used_amount * item.tax_rate / _HUNDRED)
        net_amount = round_money(item.used_amount + item.vat_amount - tax_amount)
        refund = round_money(item.request_amount - net_amount)
        lines.append(
            ExpenseLineItemResult(
                category=item.category,
                tax_rate=item.tax_rate,
                request_amount=round_money(item.request_amount),
                used_amount=round_money(item.used_amount),
                vat_amount=round_money(item.vat_amount),
                tax_amount=tax_amount,
                net_amount=net_amount,
                refund=refund,
                description=item.description,
            )
        )

    return ReconciliationResult(
        lines=lines,
        total_request=sum((line.request_amount for line in lines), ZERO),
        total_used=sum((line.used_amount for line in lines), ZERO),
        total_vat=sum((line.vat_amount for line in lines), ZERO),
        total_tax=sum((line.tax_amount for line in lines), ZERO),
        total_net=sum((line.net_amount for line in lines), ZERO),
        total_refund=sum((line.refund for line in lines), ZERO),
    )
