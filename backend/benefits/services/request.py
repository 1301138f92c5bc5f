# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError
from sqlmodel import col

from benefits.config import get_settings
from benefits.exceptions import AlreadyTerminal, AppError, NotEditable, NotEligible, ReservationConflict
from benefits.models.enums import (
    ApproverRole,
    AuditAction,
    AuditEntityType,
    BenefitType,
    BenefitVariant,
    Decision,
    RequestStatus,
)
from benefits.models.request import BenefitRequest
from benefits.models.stage import ApprovalStage
from benefits.schemas.request import (
    ChildbirthPayload,
    ExpenseClearingPayload,
    FuneralPayload,
    InternalTrainingPayload,
    RequestListResponse,
    RequestResponse,
    StageListResponse,
    StageResponse,
    WeddingPayload,
)
from benefits.services import catalog, ledger, usage, workflow
from benefits.services.amounts import ZERO, compute_fixed, compute_internal_training, standard_amounts
from benefits.services.audit import model_to_audit_dict, write_audit_log
from benefits.services.documents import get_document_store
from benefits.services.employee import EmployeeInfo, get_employee_service
from benefits.services.locks import ReservationKey, get_reservation_locks, reservation_key
from benefits.services.notifications import StatusChangeEvent, get_notification_service
from benefits.services.reconciliation import reconcile, resolve_vat

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncSession

    from benefits.schemas.auth import AuthContext
    from benefits.schemas.catalog import BenefitLimitPolicy
    from benefits.schemas.request import BenefitPayload, EditRequestPayload, SubmitRequestPayload

logger = logging.getLogger(__name__)


@dataclass
class _Amounts:
    """Computed figures for one request body, before any reservation."""

    base: Decimal
    vat: Decimal
    withholding: Decimal
    net: Decimal
    refund: Decimal = ZERO
    count: int = 0
    category: str | None = None
    advance_request_id: uuid.UUID | None = None
    extra: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _build_request_response(request: BenefitRequest) -> RequestResponse:
    """Map a request model to its response schema."""
    return RequestResponse(
        id=request.id,
        employee_id=request.employee_id,
        benefit_type=BenefitType(request.benefit_type),
        base_amount=request.base_amount,
        vat_amount=request.vat_amount,
        withholding_amount=request.withholding_amount,
        net_amount=request.net_amount,
        excess_amount=request.excess_amount,
        company_share=request.company_share,
        employee_share=request.employee_share,
        refund_amount=request.refund_amount,
        status=RequestStatus(request.status),
        payload=request.payload_json,
        advance_request_id=request.advance_request_id,
        document_ref=request.document_ref,
        submitted_at=request.submitted_at,
        decided_at=request.decided_at,
        created_at=request.created_at,
        updated_at=request.updated_at,
    )


def _build_stage_response(stage: ApprovalStage) -> StageResponse:
    return StageResponse(
        id=stage.id,
        request_id=stage.request_id,
        stage=RequestStatus(stage.stage),
        role=ApproverRole(stage.role),
        approver_id=stage.approver_id,
        decision=Decision(stage.decision),
        signature_ref=stage.signature_ref,
        note=stage.note,
        decided_at=stage.decided_at,
    )


def _ensure_owner(auth: AuthContext, request: BenefitRequest, action: str) -> None:
    if auth.user_id != request.employee_id and not auth.is_admin:
        raise AppError(f"Not authorized to {action} this request", status_code=403)


async def _get_request_or_404(session: AsyncSession, request_id: uuid.UUID) -> BenefitRequest:
    """Fetch a request by ID. Raises 404 if not found."""
    result = await session.execute(select(BenefitRequest).where(col(BenefitRequest.id) == request_id))
    request = result.scalar_one_or_none()
    if request is None:
        raise AppError("Request not found", status_code=404)
    return request


async def _get_request_for_update(session: AsyncSession, request_id: uuid.UUID) -> BenefitRequest:
    """Re-read a request under a row lock, overwriting any stale copy in the session."""
    result = await session.execute(
        select(BenefitRequest)
        .where(col(BenefitRequest.id) == request_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise AppError("Request not found", status_code=404)
    return request


async def _get_employee_or_404(employee_id: uuid.UUID) -> EmployeeInfo:
    employee = await get_employee_service().get_employee(employee_id)
    if employee is None:
        raise AppError("Employee not found", status_code=404)
    return employee


def _check_eligibility(employee: EmployeeInfo, policy: BenefitLimitPolicy, today: date) -> None:
    """External training needs a minimum tenure."""
    if policy.benefit_type != BenefitType.TRAINING:
        return
    min_days = get_settings().training_min_tenure_days
    tenure = (today - employee.start_date).days
    if tenure < min_days:
        msg = f"Training requires at least {min_days} days of service, employee has {max(tenure, 0)}"
        raise NotEligible(msg)


async def _check_advance(
    session: AsyncSession,
    employee_id: uuid.UUID,
    advance_request_id: uuid.UUID,
    exclude_request_id: uuid.UUID | None = None,
) -> None:
    """The advance being cleared must be the employee's own, approved, and not yet cleared."""
    result = await session.execute(select(BenefitRequest).where(col(BenefitRequest.id) == advance_request_id))
    advance = result.scalar_one_or_none()
    if advance is None or advance.employee_id != employee_id:
        raise AppError("Advance request not found", status_code=404)
    if advance.benefit_type != BenefitType.ADVANCE.value:
        raise AppError("Only advance requests can be cleared", status_code=400)
    if advance.status != RequestStatus.APPROVED.value:
        raise AppError("Advance request must be approved before it can be cleared", status_code=400)

    inactive = [status.value for status in workflow.TERMINAL_STATUSES if status != RequestStatus.APPROVED]
    query = select(BenefitRequest).where(
        col(BenefitRequest.advance_request_id) == advance_request_id,
        col(BenefitRequest.status).not_in(inactive),
    )
    if exclude_request_id is not None:
        query = query.where(col(BenefitRequest.id) != exclude_request_id)
    existing = await session.execute(query)
    if existing.scalars().first() is not None:
        raise AppError("Advance has already been cleared", status_code=409)


def _compute_amounts(policy: BenefitLimitPolicy, body: BenefitPayload) -> _Amounts:
    """Dispatch on the catalog variant. Pure: raises before any state change."""
    if isinstance(body, WeddingPayload):
        fixed = catalog.fixed_amount_for(policy.benefit_type, body.sub_category)
        amounts = compute_fixed(fixed, body.vat_amount, body.withholding_amount)
        return _Amounts(amounts.base, amounts.vat, amounts.withholding, amounts.net)

    if isinstance(body, ChildbirthPayload):
        total = sum(
            (catalog.fixed_amount_for(policy.benefit_type, child.birth_type.value) for child in body.children), ZERO
        )
        amounts = compute_fixed(total, body.vat_amount, body.withholding_amount)
        return _Amounts(amounts.base, amounts.vat, amounts.withholding, amounts.net, count=len(body.children))

    if isinstance(body, FuneralPayload):
        fixed = catalog.fixed_amount_for(policy.benefit_type, body.relation.value)
        amounts = compute_fixed(fixed, body.vat_amount, body.withholding_amount)
        return _Amounts(amounts.base, amounts.vat, amounts.withholding, amounts.net, category=body.relation.value)

    if isinstance(body, InternalTrainingPayload):
        computed = compute_internal_training(
            [
                (body.instructor_fee, body.instructor_fee_vat, body.instructor_fee_withholding),
                (body.room_food_beverage, body.room_food_beverage_vat, body.room_food_beverage_withholding),
                (body.other_expenses, body.other_expenses_vat, body.other_expenses_withholding),
            ],
            body.total_participants,
        )
        return _Amounts(
            computed.base,
            computed.vat,
            computed.withholding,
            computed.net,
            extra={"cost_per_participant": str(computed.cost_per_participant)},
        )

    if isinstance(body, ExpenseClearingPayload):
        line_items = resolve_vat(body.line_items, body.vat_mode, get_settings().reconciliation_vat_rate)
        result = reconcile(line_items)
        return _Amounts(
            result.total_used,
            result.total_vat,
            result.total_tax,
            result.total_net,
            refund=result.total_refund,
            advance_request_id=body.advance_request_id,
            extra={"reconciliation": result.model_dump(mode="json")},
        )

    # Standard free-entry types and external training.
    amounts = standard_amounts(body.base_amount, body.vat_amount, body.withholding_amount)
    return _Amounts(amounts.base, amounts.vat, amounts.withholding, amounts.net)


def _lock_keys(
    employee_id: uuid.UUID,
    policy: BenefitLimitPolicy,
    advance_request_id: uuid.UUID | None = None,
    request_id: uuid.UUID | None = None,
) -> list[ReservationKey]:
    """Keys serializing every writer that could race on the same capacity or the same request."""
    keys: list[ReservationKey] = []
    if request_id is not None:
        keys.append(reservation_key(employee_id, f"request:{request_id}"))
    if policy.is_budgeted:
        keys.append(reservation_key(employee_id, catalog.pool_key_for(policy.benefit_type)))
    elif policy.variant in (BenefitVariant.LIFETIME_COUNT, BenefitVariant.LIFETIME_CATEGORY_SET):
        keys.append(reservation_key(employee_id, policy.benefit_type.value))
    if advance_request_id is not None:
        keys.append(reservation_key(employee_id, f"advance:{advance_request_id}"))
    return keys


def _reservation_of(request: BenefitRequest) -> ledger.Reservation | None:
    if request.reserved_pool is None or request.reserved_period_start is None:
        return None
    return ledger.Reservation(
        pool_key=request.reserved_pool,
        period_start=request.reserved_period_start,
        amount=request.reserved_amount,
    )


def _record_reservation(request: BenefitRequest, reservation: ledger.Reservation | None) -> None:
    if reservation is None:
        request.reserved_pool = None
        request.reserved_period_start = None
        request.reserved_amount = ZERO
        return
    request.reserved_pool = reservation.pool_key
    request.reserved_period_start = reservation.period_start
    request.reserved_amount = reservation.amount


def _apply_amounts(request: BenefitRequest, body: BenefitPayload, amounts: _Amounts) -> None:
    request.base_amount = amounts.base
    request.vat_amount = amounts.vat
    request.withholding_amount = amounts.withholding
    request.net_amount = amounts.net
    request.refund_amount = amounts.refund
    request.advance_request_id = amounts.advance_request_id
    request.payload_json = {**body.model_dump(mode="json"), **amounts.extra}


async def _reserve_capacity(
    session: AsyncSession,
    employee: EmployeeInfo,
    policy: BenefitLimitPolicy,
    request: BenefitRequest,
    amounts: _Amounts,
) -> None:
    """Release whatever the request holds and reserve for the new amounts, as one unit.

    Each tracker checks capacity against its locked row before mutating, so a
    capacity error leaves the previous reservation in place.
    """
    source_id = str(request.id)

    if policy.variant == BenefitVariant.BUDGET_SPLIT:
        reservation, split = await ledger.rereserve_training(
            session,
            employee,
            amounts.base,
            amounts.vat,
            amounts.withholding,
            source_id,
            previous=_reservation_of(request),
        )
        _record_reservation(request, reservation)
        request.excess_amount = split.excess
        request.company_share = split.company_share
        request.employee_share = split.employee_share
        return

    if policy.is_budgeted:
        reservation = await ledger.rereserve(
            session, employee, policy.benefit_type, amounts.net, source_id, previous=_reservation_of(request)
        )
        _record_reservation(request, reservation)
        return

    if policy.variant == BenefitVariant.LIFETIME_COUNT:
        await usage.reserve_count_slot(
            session, employee.id, policy.benefit_type, amounts.count, previous=request.reserved_count
        )
        request.reserved_count = amounts.count
        return

    if policy.variant == BenefitVariant.LIFETIME_CATEGORY_SET and amounts.category is not None:
        await usage.reserve_category_slot(
            session, employee.id, policy.benefit_type, amounts.category, previous=request.reserved_category
        )
        request.reserved_category = amounts.category


async def _release_capacity(session: AsyncSession, request: BenefitRequest) -> None:
    """Give back everything the request holds. Safe to call twice."""
    source_id = str(request.id)
    await ledger.release(session, request.employee_id, _reservation_of(request), source_id)
    _record_reservation(request, None)

    if request.reserved_count:
        await usage.release_count_slot(session, request.employee_id, request.benefit_type, request.reserved_count)
        request.reserved_count = 0
    if request.reserved_category is not None:
        await usage.release_category_slot(
            session, request.employee_id, request.benefit_type, request.reserved_category
        )
        request.reserved_category = None


async def _store_document(request: BenefitRequest) -> None:
    request.document_ref = await get_document_store().store(_build_request_response(request))


@asynccontextmanager
async def _reservation_unit(session: AsyncSession, keys: list[ReservationKey]) -> AsyncIterator[None]:
    """Hold the per-key locks across one transaction; a domain error inside rolls it back."""
    async with get_reservation_locks().hold(*keys):
        try:
            yield
        except AppError:
            await session.rollback()
            raise


async def _commit_or_conflict(session: AsyncSession) -> None:
    """Commit, mapping lock and serialization failures to a retryable conflict."""
    try:
        await session.commit()
    except (OperationalError, IntegrityError, StaleDataError):
        await session.rollback()
        logger.warning("Commit lost a reservation race, rolled back")
        raise ReservationConflict from None


async def _notify(request: BenefitRequest) -> None:
    await get_notification_service().publish(
        StatusChangeEvent(
            request_id=request.id,
            employee_id=request.employee_id,
            benefit_type=BenefitType(request.benefit_type),
            new_status=RequestStatus(request.status),
            net_amount=request.net_amount,
        )
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def submit_request(
    session: AsyncSession,
    auth: AuthContext,
    payload: SubmitRequestPayload,
) -> RequestResponse:
    """Submit a benefit request, reserving budget or a usage slot.

    Flow:
    1. Resolve the catalog policy and the employee
    2. Check eligibility (training tenure)
    3. Compute amounts (validation errors surface here, nothing is touched)
    4. For reconciliation, check the referenced advance
    5. Under the per-key lock: reserve capacity, create the request in
       PENDING_MANAGER, store the document snapshot, audit, commit
    6. Notify
    """
    if auth.user_id != payload.employee_id and not auth.is_admin:
        raise AppError("Not authorized to submit for another employee", status_code=403)

    body = payload.payload
    policy = catalog.policy_for(body.benefit_type)
    employee = await _get_employee_or_404(payload.employee_id)
    today = date.today()

    _check_eligibility(employee, policy, today)
    amounts = _compute_amounts(policy, body)

    request = BenefitRequest(employee_id=employee.id, benefit_type=policy.benefit_type.value)
    _apply_amounts(request, body, amounts)

    async with _reservation_unit(session, _lock_keys(employee.id, policy, amounts.advance_request_id)):
        if amounts.advance_request_id is not None:
            await _check_advance(session, employee.id, amounts.advance_request_id)

        await _reserve_capacity(session, employee, policy, request, amounts)

        now = datetime.now(UTC)
        request.status = workflow.submit(RequestStatus.DRAFT).value
        request.submitted_at = now
        session.add(request)
        await session.flush()

        await _store_document(request)
        await write_audit_log(
            session,
            actor_id=auth.user_id,
            actor_role=auth.role,
            entity_type=AuditEntityType.REQUEST,
            entity_id=request.id,
            action=AuditAction.SUBMIT,
            after_json=model_to_audit_dict(request),
        )
        await _commit_or_conflict(session)

    await session.refresh(request)
    logger.info(
        "Submitted %s request %s for employee %s: net=%s",
        request.benefit_type,
        request.id,
        request.employee_id,
        request.net_amount,
    )
    await _notify(request)
    return _build_request_response(request)


async def edit_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: EditRequestPayload,
) -> RequestResponse:
    """Change the body of a draft or manager-pending request.

    Amounts are recomputed and the reservation is swapped with
    release-then-reserve under one lock and one transaction. When the new
    amount does not fit, the original reservation is kept unchanged.
    """
    request = await _get_request_or_404(session, request_id)
    _ensure_owner(auth, request, "edit")
    if not workflow.is_editable(request.status):
        raise NotEditable(f"Request in {request.status} can no longer be edited")

    body = payload.payload
    if body.benefit_type != request.benefit_type:
        raise AppError("Benefit type of a request cannot be changed", status_code=400)

    policy = catalog.policy_for(body.benefit_type)
    employee = await _get_employee_or_404(request.employee_id)
    amounts = _compute_amounts(policy, body)
    keys = _lock_keys(employee.id, policy, amounts.advance_request_id, request_id=request.id)

    async with _reservation_unit(session, keys):
        # A decision may have landed meanwhile.
        request = await _get_request_for_update(session, request_id)
        if not workflow.is_editable(request.status):
            raise NotEditable(f"Request in {request.status} can no longer be edited")
        before_dict = model_to_audit_dict(request)
        if amounts.advance_request_id is not None:
            await _check_advance(session, employee.id, amounts.advance_request_id, exclude_request_id=request.id)

        await _reserve_capacity(session, employee, policy, request, amounts)
        _apply_amounts(request, body, amounts)
        request.updated_at = datetime.now(UTC)
        await session.flush()

        await _store_document(request)
        await write_audit_log(
            session,
            actor_id=auth.user_id,
            actor_role=auth.role,
            entity_type=AuditEntityType.REQUEST,
            entity_id=request.id,
            action=AuditAction.UPDATE,
            before_json=before_dict,
            after_json=model_to_audit_dict(request),
        )
        await _commit_or_conflict(session)

    await session.refresh(request)
    logger.info("Edited request %s: net=%s", request.id, request.net_amount)
    await _notify(request)
    return _build_request_response(request)


async def decide_request(
    session: AsyncSession,
    request_id: uuid.UUID,
    acting_role: str,
    approver_id: uuid.UUID,
    decision: Decision,
    signature_ref: str | None = None,
    note: str | None = None,
) -> RequestResponse:
    """Record an approver's decision on the current stage.

    1. Fetch the request and resolve the acting role.
    2. Compute the next status (WrongStage / AlreadyTerminal raised here).
    3. Under the per-key lock: reject releases the reservation, the final
       approval converts the budget hold into usage.
    4. Stamp an ApprovalStage, store the snapshot, audit, commit.
    5. Notify.
    """
    request = await _get_request_or_404(session, request_id)
    try:
        role = ApproverRole(acting_role)
    except ValueError:
        raise AppError(f"Role {acting_role!r} cannot decide requests", status_code=403) from None
    if approver_id == request.employee_id:
        raise AppError("Approvers cannot decide their own request", status_code=403)

    policy = catalog.policy_for(request.benefit_type)
    keys = _lock_keys(request.employee_id, policy, request_id=request.id)

    async with _reservation_unit(session, keys):
        request = await _get_request_for_update(session, request_id)
        previous_status = RequestStatus(request.status)
        new_status = workflow.transition(
            previous_status,
            role,
            decision,
            request.benefit_type,
            request.net_amount,
            get_settings().special_approval_threshold,
        )
        before_dict = model_to_audit_dict(request)
        now = datetime.now(UTC)

        if workflow.is_rejected(new_status):
            await _release_capacity(session, request)
        elif new_status == RequestStatus.APPROVED:
            await ledger.consume(session, request.employee_id, _reservation_of(request), str(request.id))

        session.add(
            ApprovalStage(
                request_id=request.id,
                stage=previous_status.value,
                role=role.value,
                approver_id=approver_id,
                decision=Decision(decision).value,
                signature_ref=signature_ref,
                note=note,
                decided_at=now,
            )
        )
        request.status = new_status.value
        request.updated_at = now
        if workflow.is_terminal(new_status):
            request.decided_at = now
        await session.flush()

        await _store_document(request)
        await write_audit_log(
            session,
            actor_id=approver_id,
            actor_role=role.value,
            entity_type=AuditEntityType.REQUEST,
            entity_id=request.id,
            action=AuditAction.REJECT if Decision(decision) == Decision.REJECT else AuditAction.APPROVE,
            before_json=before_dict,
            after_json=model_to_audit_dict(request),
        )
        await _commit_or_conflict(session)

    await session.refresh(request)
    logger.info("Request %s moved %s -> %s by %s", request.id, previous_status.value, new_status.value, role.value)
    await _notify(request)
    return _build_request_response(request)


async def cancel_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
) -> RequestResponse:
    """Withdraw a request that is still editable, returning what it reserved.

    The employee who submitted the request or an admin can cancel.
    """
    request = await _get_request_or_404(session, request_id)
    _ensure_owner(auth, request, "cancel")

    policy = catalog.policy_for(request.benefit_type)
    keys = _lock_keys(request.employee_id, policy, request_id=request.id)

    async with _reservation_unit(session, keys):
        request = await _get_request_for_update(session, request_id)
        if workflow.is_terminal(request.status):
            raise AlreadyTerminal(f"Request is already {request.status}")
        if not workflow.is_editable(request.status):
            raise NotEditable(f"Request in {request.status} can no longer be cancelled")

        before_dict = model_to_audit_dict(request)
        now = datetime.now(UTC)
        await _release_capacity(session, request)
        request.status = RequestStatus.CANCELLED.value
        request.decided_at = now
        request.updated_at = now
        await session.flush()

        await write_audit_log(
            session,
            actor_id=auth.user_id,
            actor_role=auth.role,
            entity_type=AuditEntityType.REQUEST,
            entity_id=request.id,
            action=AuditAction.CANCEL,
            before_json=before_dict,
            after_json=model_to_audit_dict(request),
        )
        await _commit_or_conflict(session)

    await session.refresh(request)
    logger.info("Cancelled request %s", request.id)
    await _notify(request)
    return _build_request_response(request)


async def get_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
) -> RequestResponse:
    """Get a single request by ID."""
    request = await _get_request_or_404(session, request_id)
    if not auth.can_view(request.employee_id):
        raise AppError("Request not found", status_code=404)
    return _build_request_response(request)


async def list_requests(
    session: AsyncSession,
    auth: AuthContext,
    status_filter: str | None = None,
    benefit_type: str | None = None,
    employee_id: uuid.UUID | None = None,
    offset: int = 0,
    limit: int = 50,
) -> RequestListResponse:
    """List requests with optional filters, ordered by created_at DESC.

    Employees only ever see their own requests.
    """
    base_filters = []
    if not auth.is_reviewer:
        employee_id = auth.user_id

    if status_filter is not None:
        base_filters.append(col(BenefitRequest.status) == status_filter)
    if benefit_type is not None:
        base_filters.append(col(BenefitRequest.benefit_type) == benefit_type)
    if employee_id is not None:
        base_filters.append(col(BenefitRequest.employee_id) == employee_id)

    count_result = await session.execute(select(func.count()).select_from(BenefitRequest).where(*base_filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(BenefitRequest)
        .where(*base_filters)
        .order_by(col(BenefitRequest.created_at).desc())
        .offset(offset)
        .limit(limit)
    )
    requests = list(result.scalars().all())

    return RequestListResponse(
        items=[_build_request_response(r) for r in requests],
        total=total,
    )


async def list_stages(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
) -> StageListResponse:
    """Approval history of a request, oldest first."""
    request = await _get_request_or_404(session, request_id)
    if not auth.can_view(request.employee_id):
        raise AppError("Request not found", status_code=404)

    result = await session.execute(
        select(ApprovalStage)
        .where(col(ApprovalStage.request_id) == request_id)
        .order_by(col(ApprovalStage.decided_at))
    )
    stages = list(result.scalars().all())
    return StageListResponse(items=[_build_stage_response(s) for s in stages], total=len(stages))
