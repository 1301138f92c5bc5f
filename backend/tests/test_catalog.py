from __future__ import annotations

from decimal import Decimal

import pytest

from benefits.exceptions import InvalidAmount, UnknownBenefitType
from benefits.models.enums import BenefitType, BenefitVariant, LimitPeriod
from benefits.services import catalog


def test_every_benefit_type_has_a_policy() -> None:
    assert {p.benefit_type for p in catalog.list_policies()} == set(BenefitType)


def test_unknown_type_is_rejected() -> None:
    with pytest.raises(UnknownBenefitType) as exc_info:
        catalog.policy_for("yacht")
    assert exc_info.value.status_code == 422
    assert "yacht" in exc_info.value.message


def test_lookup_accepts_plain_strings() -> None:
    assert catalog.policy_for("fitness").period == LimitPeriod.MONTHLY


def test_dental_and_glasses_share_a_pool() -> None:
    assert catalog.pool_key_for(BenefitType.DENTAL) == catalog.DENTAL_GLASSES_POOL
    assert catalog.pool_key_for(BenefitType.GLASSES) == catalog.DENTAL_GLASSES_POOL
    assert catalog.pool_key_for(BenefitType.MEDICAL) == "medical"


def test_training_is_the_only_split_type() -> None:
    split_types = [p.benefit_type for p in catalog.list_policies() if p.variant == BenefitVariant.BUDGET_SPLIT]
    assert split_types == [BenefitType.TRAINING]


def test_budgeted_types() -> None:
    budgeted = {p.benefit_type for p in catalog.list_policies() if p.is_budgeted}
    assert budgeted == {
        BenefitType.WEDDING,
        BenefitType.TRAINING,
        BenefitType.GLASSES,
        BenefitType.DENTAL,
        BenefitType.FITNESS,
        BenefitType.MEDICAL,
    }


def test_fixed_amounts() -> None:
    assert catalog.fixed_amount_for(BenefitType.CHILDBIRTH, "natural") == Decimal("4000")
    assert catalog.fixed_amount_for(BenefitType.FUNERAL, "parent") == Decimal("5000")
    assert catalog.fixed_amount_for(BenefitType.WEDDING, "standard") == Decimal("3000")


def test_missing_sub_category() -> None:
    with pytest.raises(InvalidAmount, match="sub-category"):
        catalog.fixed_amount_for(BenefitType.WEDDING, "destination")


def test_policies_are_immutable() -> None:
    policy = catalog.policy_for(BenefitType.MEDICAL)
    with pytest.raises(ValueError):
        policy.cap = Decimal("1")  # type: ignore[misc]
