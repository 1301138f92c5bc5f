"""Static benefit catalog: limit policy and amount rule per benefit type."""

from __future__ import annotations

from decimal import Decimal

from benefits.exceptions import InvalidAmount, UnknownBenefitType
from benefits.models.enums import AmountRule, BenefitType, BenefitVariant, BirthType, FuneralRelation, LimitPeriod
from benefits.schemas.catalog import BenefitLimitPolicy

# Eyewear and dental draw from one balance.
DENTAL_GLASSES_POOL = "dental_glasses"

_CATALOG: dict[BenefitType, BenefitLimitPolicy] = {
    policy.benefit_type: policy
    for policy in (
        BenefitLimitPolicy(
            benefit_type=BenefitType.WEDDING,
            variant=BenefitVariant.FIXED_BY_SUBCATEGORY,
            amount_rule=AmountRule.FIXED,
            period=LimitPeriod.ANNUAL,
            cap=Decimal("3000"),
            fixed_amounts={"standard": Decimal("3000")},
        ),
        BenefitLimitPolicy(
            benefit_type=BenefitType.TRAINING,
            variant=BenefitVariant.BUDGET_SPLIT,
            amount_rule=AmountRule.FREE_ENTRY,
            period=LimitPeriod.ANNUAL,
            cap=Decimal("10000"),
        ),
        BenefitLimitPolicy(
            benefit_type=BenefitType.CHILDBIRTH,
            variant=BenefitVariant.LIFETIME_COUNT,
            amount_rule=AmountRule.FIXED,
            period=LimitPeriod.LIFETIME_COUNT,
            cap=Decimal("3"),
            fixed_amounts={
                BirthType.NATURAL.value: Decimal("4000"),
                BirthType.CAESAREAN.value: Decimal("6000"),
            },
        ),
        BenefitLimitPolicy(
            benefit_type=BenefitType.FUNERAL,
            variant=BenefitVariant.LIFETIME_CATEGORY_SET,
            amount_rule=AmountRule.FIXED,
            period=LimitPeriod.LIFETIME_CATEGORY_SET,
            # Host fee 3000 plus the relation's assistance amount.
            fixed_amounts={
                FuneralRelation.EMPLOYEE_SPOUSE.value: Decimal("9000"),
                FuneralRelation.CHILD.value: Decimal("7000"),
                FuneralRelation.PARENT.value: Decimal("5000"),
            },
        ),
        BenefitLimitPolicy(
            benefit_type=BenefitType.GLASSES,
            variant=BenefitVariant.STANDARD,
            amount_rule=AmountRule.FREE_ENTRY,
            period=LimitPeriod.ANNUAL,
            cap=Decimal("2000"),
            pooled_with=BenefitType.DENTAL,
        ),
        BenefitLimitPolicy(
            benefit_type=BenefitType.DENTAL,
            variant=BenefitVariant.STANDARD,
            amount_rule=AmountRule.FREE_ENTRY,
            period=LimitPeriod.ANNUAL,
            cap=Decimal("2000"),
            pooled_with=BenefitType.GLASSES,
        ),
        BenefitLimitPolicy(
            benefit_type=BenefitType.FITNESS,
            variant=BenefitVariant.STANDARD,
            amount_rule=AmountRule.FREE_ENTRY,
            period=LimitPeriod.MONTHLY,
            cap=Decimal("300"),
        ),
        BenefitLimitPolicy(
            benefit_type=BenefitType.MEDICAL,
            variant=BenefitVariant.STANDARD,
            amount_rule=AmountRule.FREE_ENTRY,
            period=LimitPeriod.ANNUAL,
            cap=Decimal("1000"),
        ),
        BenefitLimitPolicy(
            benefit_type=BenefitType.INTERNAL_TRAINING,
            variant=BenefitVariant.STANDARD,
            amount_rule=AmountRule.COMPUTED,
            period=LimitPeriod.NONE,
        ),
        BenefitLimitPolicy(
            benefit_type=BenefitType.ADVANCE,
            variant=BenefitVariant.STANDARD,
            amount_rule=AmountRule.FREE_ENTRY,
            period=LimitPeriod.NONE,
        ),
        BenefitLimitPolicy(
            benefit_type=BenefitType.EXPENSE_CLEARING,
            variant=BenefitVariant.RECONCILIATION,
            amount_rule=AmountRule.COMPUTED,
            period=LimitPeriod.NONE,
        ),
    )
}


def policy_for(benefit_type: BenefitType | str) -> BenefitLimitPolicy:
    """Return the limit policy for a benefit type. Raises UnknownBenefitType."""
    try:
        return _CATALOG[BenefitType(benefit_type)]
    except (KeyError, ValueError):
        raise UnknownBenefitType(str(benefit_type)) from None


def list_policies() -> list[BenefitLimitPolicy]:
    return list(_CATALOG.values())


def pool_key_for(benefit_type: BenefitType | str) -> str:
    """Budget pool a benefit type draws from; pooled types share one key."""
    policy = policy_for(benefit_type)
    if policy.pooled_with is not None:
        return DENTAL_GLASSES_POOL
    return policy.benefit_type.value


def fixed_amount_for(benefit_type: BenefitType | str, sub_category: str) -> Decimal:
    """Look up the fixed amount for a sub-category of a fixed-amount benefit."""
    policy = policy_for(benefit_type)
    try:
        return policy.fixed_amounts[sub_category]
    except KeyError:
        msg = f"No fixed amount for {policy.benefit_type.value} sub-category {sub_category!r}"
        raise InvalidAmount(msg) from None
