# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from benefits.models.enums import (
    ApproverRole,
    BenefitType,
    BirthType,
    Decision,
    FuneralRelation,
    RequestStatus,
    VatMode,
)
from benefits.schemas.reconciliation import ExpenseLineItemInput

# ---------------------------------------------------------------------------
# Per-benefit payloads (discriminated on benefit_type)
# ---------------------------------------------------------------------------


class StandardPayload(BaseModel):
    """Free-entry amount with optional VAT and withholding."""

    benefit_type: Literal["glasses", "dental", "fitness", "medical", "advance"]
    base_amount: Decimal
    vat_amount: Decimal = Decimal("0")
    withholding_amount: Decimal = Decimal("0")
    description: str | None = Field(default=None, max_length=2000)


class TrainingPayload(BaseModel):
    """External training; cost above the remaining budget is split with the employee."""

    benefit_type: Literal["training"]
    base_amount: Decimal
    vat_amount: Decimal = Decimal("0")
    withholding_amount: Decimal = Decimal("0")
    course_name: str | None = Field(default=None, max_length=255)
    start_date: date | None = None
    end_date: date | None = None


class WeddingPayload(BaseModel):
    benefit_type: Literal["wedding"]
    sub_category: str = "standard"
    vat_amount: Decimal = Decimal("0")
    withholding_amount: Decimal = Decimal("0")
    description: str | None = Field(default=None, max_length=2000)


class ChildClaim(BaseModel):
    birth_type: BirthType
    child_name: str | None = Field(default=None, max_length=255)
    birth_date: date | None = None


class ChildbirthPayload(BaseModel):
    """One or more children; each consumes a lifetime slot."""

    benefit_type: Literal["childbirth"]
    children: list[ChildClaim] = Field(min_length=1)
    vat_amount: Decimal = Decimal("0")
    withholding_amount: Decimal = Decimal("0")


class FuneralPayload(BaseModel):
    benefit_type: Literal["funeral"]
    relation: FuneralRelation
    deceased_name: str | None = Field(default=None, max_length=255)
    vat_amount: Decimal = Decimal("0")
    withholding_amount: Decimal = Decimal("0")


class InternalTrainingPayload(BaseModel):
    """In-house training whose amount is computed from three cost groups."""

    benefit_type: Literal["internal_training"]
    course_name: str | None = Field(default=None, max_length=255)
    total_participants: int = Field(default=1, ge=1)
    instructor_fee: Decimal = Decimal("0")
    instructor_fee_vat: Decimal = Decimal("0")
    instructor_fee_withholding: Decimal = Decimal("0")
    room_food_beverage: Decimal = Decimal("0")
    room_food_beverage_vat: Decimal = Decimal("0")
    room_food_beverage_withholding: Decimal = Decimal("0")
    other_expenses: Decimal = Decimal("0")
    other_expenses_vat: Decimal = Decimal("0")
    other_expenses_withholding: Decimal = Decimal("0")


class ExpenseClearingPayload(BaseModel):
    """Actual spend reconciled against an approved cash advance."""

    benefit_type: Literal["expense_clearing"]
    advance_request_id: uuid.UUID
    vat_mode: VatMode = VatMode.MANUAL
    line_items: list[ExpenseLineItemInput]


BenefitPayload = Annotated[
    StandardPayload
    | TrainingPayload
    | WeddingPayload
    | ChildbirthPayload
    | FuneralPayload
    | InternalTrainingPayload
    | ExpenseClearingPayload,
    Field(discriminator="benefit_type"),
]

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class SubmitRequestPayload(BaseModel):
    """Request body for submitting a new benefit request."""

    employee_id: uuid.UUID
    payload: BenefitPayload


class EditRequestPayload(BaseModel):
    """Request body for editing a request that is still editable."""

    payload: BenefitPayload


class DecisionPayload(BaseModel):
    """Request body for approve/reject actions."""

    decision: Decision
    signature_ref: str | None = Field(default=None, max_length=255)
    note: str | None = Field(default=None, max_length=1000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class RequestResponse(BaseModel):
    """Response schema for a single benefit request."""

    id: uuid.UUID
    employee_id: uuid.UUID
    benefit_type: BenefitType
    base_amount: Decimal
    vat_amount: Decimal
    withholding_amount: Decimal
    net_amount: Decimal
    excess_amount: Decimal
    company_share: Decimal
    employee_share: Decimal
    refund_amount: Decimal
    status: RequestStatus
    payload: dict[str, Any]
    advance_request_id: uuid.UUID | None
    document_ref: str | None
    submitted_at: datetime | None
    decided_at: datetime | None
    created_at: datetime
    updated_at: datetime


class RequestListResponse(BaseModel):
    """Paginated list of benefit requests."""

    items: list[RequestResponse]
    total: int


class StageResponse(BaseModel):
    """A completed approval step."""

    id: uuid.UUID
    request_id: uuid.UUID
    stage: RequestStatus
    role: ApproverRole
    approver_id: uuid.UUID
    decision: Decision
    signature_ref: str | None
    note: str | None
    decided_at: datetime


class StageListResponse(BaseModel):
    items: list[StageResponse]
    total: int
