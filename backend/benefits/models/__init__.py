from sqlmodel import SQLModel

from benefits.models.audit import AuditLog
from benefits.models.balance import BudgetBalance
from benefits.models.base import TimestampMixin, UUIDBase
from benefits.models.enums import (
    AmountRule,
    ApproverRole,
    AuditAction,
    AuditEntityType,
    BenefitType,
    BenefitVariant,
    BirthType,
    Decision,
    FuneralRelation,
    LedgerEntryType,
    LedgerSourceType,
    LimitPeriod,
    RequestStatus,
    VatMode,
)
from benefits.models.ledger import BudgetLedgerEntry
from benefits.models.request import BenefitRequest
from benefits.models.stage import ApprovalStage
from benefits.models.usage import UsageCounter

__all__ = [
    "AmountRule",
    "ApprovalStage",
    "ApproverRole",
    "AuditAction",
    "AuditEntityType",
    "AuditLog",
    "BenefitRequest",
    "BenefitType",
    "BenefitVariant",
    "BirthType",
    "BudgetBalance",
    "BudgetLedgerEntry",
    "Decision",
    "FuneralRelation",
    "LedgerEntryType",
    "LedgerSourceType",
    "LimitPeriod",
    "RequestStatus",
    "SQLModel",
    "TimestampMixin",
    "UUIDBase",
    "UsageCounter",
    "VatMode",
]
