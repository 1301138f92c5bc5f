# ruff: noqa: TC001
from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from benefits.models.enums import AmountRule, BenefitType, BenefitVariant, LimitPeriod


class BenefitLimitPolicy(BaseModel):
    """Immutable limit and amount rules for one benefit type."""

    model_config = ConfigDict(frozen=True)

    benefit_type: BenefitType
    variant: BenefitVariant
    amount_rule: AmountRule
    period: LimitPeriod
    # Money cap for ANNUAL/MONTHLY, slot count for LIFETIME_COUNT, None when uncapped.
    cap: Decimal | None = None
    pooled_with: BenefitType | None = None
    fixed_amounts: dict[str, Decimal] = Field(default_factory=dict)

    @property
    def is_budgeted(self) -> bool:
        """True when the cap is tracked by the budget ledger."""
        return self.period in (LimitPeriod.ANNUAL, LimitPeriod.MONTHLY)


class CatalogResponse(BaseModel):
    items: list[BenefitLimitPolicy]
    total: int
