"""Pure amount calculations: VAT, withholding and the training budget split.

All money is Decimal. Each derived figure is rounded to 2 places, half away
from zero, independently of the others.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from benefits.exceptions import InvalidAmount

_CENT = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class StandardAmounts:
    base: Decimal
    vat: Decimal
    withholding: Decimal
    net: Decimal


@dataclass(frozen=True)
class BudgetSplit:
    """Result of a training computation against the remaining budget."""

    net: Decimal
    excess: Decimal
    company_share: Decimal
    employee_share: Decimal
    # Portion of the gross cost covered by the remaining budget.
    in_budget: Decimal


@dataclass(frozen=True)
class InternalTrainingAmounts:
    base: Decimal
    vat: Decimal
    withholding: Decimal
    net: Decimal
    cost_per_participant: Decimal


def round_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return Decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def _require_non_negative(**amounts: Decimal) -> None:
    for name, value in amounts.items():
        if value is None or value < 0:
            msg = f"{name} must be a non-negative amount, got {value}"
            raise InvalidAmount(msg)


def compute_standard(base: Decimal, vat: Decimal, withholding: Decimal) -> Decimal:
    """Net payable: base + VAT - withholding."""
    _require_non_negative(base=base, vat=vat, withholding=withholding)
    return round_money(base + vat - withholding)


def standard_amounts(base: Decimal, vat: Decimal, withholding: Decimal) -> StandardAmounts:
    net = compute_standard(base, vat, withholding)
    return StandardAmounts(round_money(base), round_money(vat), round_money(withholding), net)


def compute_with_budget_split(
    base: Decimal,
    vat: Decimal,
    withholding: Decimal,
    remaining_budget: Decimal,
) -> BudgetSplit:
    """Split a cost that may exceed the remaining budget between company and employee.

    Within budget the company absorbs the whole cost. Over budget, the excess
    (gross minus remaining) is shared equally. The employee is not charged
    withholding on top of their share.
    """
    _require_non_negative(base=base, vat=vat, withholding=withholding)
    remaining_budget = max(Decimal(remaining_budget), ZERO)
    gross = base + vat
    net = round_money(gross - withholding)
    if gross <= remaining_budget:
        return BudgetSplit(net=net, excess=ZERO, company_share=ZERO, employee_share=ZERO, in_budget=round_money(gross))

    excess = round_money(gross - remaining_budget)
    # An odd cent goes to the company so the shares always add up to the excess.
    company_share = round_money(excess / 2)
    return BudgetSplit(
        net=net,
        excess=excess,
        company_share=company_share,
        employee_share=excess - company_share,
        in_budget=round_money(remaining_budget),
    )


def compute_fixed(amount: Decimal, vat: Decimal, withholding: Decimal) -> StandardAmounts:
    """A fixed table amount run through the standard formula."""
    return standard_amounts(amount, vat, withholding)


def compute_internal_training(
    groups: list[tuple[Decimal, Decimal, Decimal]],
    participants: int,
) -> InternalTrainingAmounts:
    """Sum (cost, vat, withholding) cost groups into one request amount."""
    for cost, vat, withholding in groups:
        _require_non_negative(cost=cost, vat=vat, withholding=withholding)
    if participants < 1:
        msg = "total_participants must be at least 1"
        raise InvalidAmount(msg)

    base = round_money(sum((g[0] for g in groups), ZERO))
    vat = round_money(sum((g[1] for g in groups), ZERO))
    withholding = round_money(sum((g[2] for g in groups), ZERO))
    net = compute_standard(base, vat, withholding)
    return InternalTrainingAmounts(
        base=base,
        vat=vat,
        withholding=withholding,
        net=net,
        cost_per_participant=round_money(net / participants),
    )
