from __future__ import annotations

import enum


class BenefitType(enum.StrEnum):
    """Categories of employer-funded request."""

    WEDDING = "wedding"
    TRAINING = "training"
    CHILDBIRTH = "childbirth"
    FUNERAL = "funeral"
    GLASSES = "glasses"
    DENTAL = "dental"
    FITNESS = "fitness"
    MEDICAL = "medical"
    INTERNAL_TRAINING = "internal_training"
    ADVANCE = "advance"
    EXPENSE_CLEARING = "expense_clearing"


class BenefitVariant(enum.StrEnum):
    """How a benefit type computes amounts and enforces its cap."""

    STANDARD = "STANDARD"
    BUDGET_SPLIT = "BUDGET_SPLIT"
    FIXED_BY_SUBCATEGORY = "FIXED_BY_SUBCATEGORY"
    LIFETIME_COUNT = "LIFETIME_COUNT"
    LIFETIME_CATEGORY_SET = "LIFETIME_CATEGORY_SET"
    RECONCILIATION = "RECONCILIATION"


class AmountRule(enum.StrEnum):
    """How the request amount is displayed and entered."""

    FIXED = "FIXED"
    COMPUTED = "COMPUTED"
    FREE_ENTRY = "FREE_ENTRY"


class LimitPeriod(enum.StrEnum):
    """Window over which a benefit cap applies."""

    ANNUAL = "ANNUAL"
    MONTHLY = "MONTHLY"
    LIFETIME_COUNT = "LIFETIME_COUNT"
    LIFETIME_CATEGORY_SET = "LIFETIME_CATEGORY_SET"
    NONE = "NONE"


class BirthType(enum.StrEnum):
    NATURAL = "natural"
    CAESAREAN = "caesarean"


class FuneralRelation(enum.StrEnum):
    """Relation classes for the funeral benefit; each may be claimed once."""

    EMPLOYEE_SPOUSE = "employee_spouse"
    CHILD = "child"
    PARENT = "parent"


class RequestStatus(enum.StrEnum):
    """State machine for benefit requests."""

    DRAFT = "draft"
    PENDING_MANAGER = "pending_manager"
    PENDING_HR = "pending_hr"
    PENDING_SPECIAL = "pending_special"
    PENDING_ACCOUNTING = "pending_accounting"
    APPROVED = "approved"
    REJECTED_MANAGER = "rejected_manager"
    REJECTED_HR = "rejected_hr"
    REJECTED_SPECIAL = "rejected_special"
    REJECTED_ACCOUNTING = "rejected_accounting"
    CANCELLED = "cancelled"


class ApproverRole(enum.StrEnum):
    """Role gate for each approval stage."""

    MANAGER = "manager"
    HR = "hr"
    SPECIAL_APPROVER = "special_approver"
    ACCOUNTING = "accounting"


class Decision(enum.StrEnum):
    APPROVE = "approve"
    REJECT = "reject"


class VatMode(enum.StrEnum):
    """Where reconciliation VAT comes from."""

    MANUAL = "manual"
    SYSTEM = "system"


class LedgerEntryType(enum.StrEnum):
    """Type of ledger entry affecting a budget balance."""

    HOLD = "HOLD"
    HOLD_RELEASE = "HOLD_RELEASE"
    USAGE = "USAGE"
    RESET = "RESET"


class LedgerSourceType(enum.StrEnum):
    """Origin of a ledger entry."""

    REQUEST = "REQUEST"
    SYSTEM = "SYSTEM"


class AuditEntityType(enum.StrEnum):
    """Entity type recorded in the audit log."""

    REQUEST = "REQUEST"
    BUDGET = "BUDGET"


class AuditAction(enum.StrEnum):
    """Action recorded in the audit log."""

    SUBMIT = "SUBMIT"
    UPDATE = "UPDATE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    CANCEL = "CANCEL"
    RESET = "RESET"
