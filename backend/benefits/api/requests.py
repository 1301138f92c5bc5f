# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from benefits.api.deps import AuthDep
from benefits.db import SessionDep
from benefits.models.enums import BenefitType, RequestStatus
from benefits.schemas.request import (
    DecisionPayload,
    EditRequestPayload,
    RequestListResponse,
    RequestResponse,
    StageListResponse,
    SubmitRequestPayload,
)
from benefits.services import request as request_service

requests_router = APIRouter(prefix="/requests", tags=["requests"])


@requests_router.post("", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_request(
    payload: SubmitRequestPayload,
    session: SessionDep,
    auth: AuthDep,
) -> RequestResponse:
    """Submit a new benefit request."""
    return await request_service.submit_request(session, auth, payload)


@requests_router.get("", response_model=RequestListResponse)
async def list_requests(
    session: SessionDep,
    auth: AuthDep,
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    benefit_type: BenefitType | None = Query(default=None),
    employee_id: uuid.UUID | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> RequestListResponse:
    """List benefit requests with optional filters."""
    return await request_service.list_requests(
        session,
        auth,
        status_filter.value if status_filter else None,
        benefit_type.value if benefit_type else None,
        employee_id,
        offset,
        limit,
    )


@requests_router.get("/{request_id}", response_model=RequestResponse)
async def get_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> RequestResponse:
    return await request_service.get_request(session, auth, request_id)


@requests_router.patch("/{request_id}", response_model=RequestResponse)
async def edit_request(
    request_id: uuid.UUID,
    payload: EditRequestPayload,
    session: SessionDep,
    auth: AuthDep,
) -> RequestResponse:
    """Edit a request while it is still with the manager; the reservation is re-taken."""
    return await request_service.edit_request(session, auth, request_id, payload)


@requests_router.post("/{request_id}/decision", response_model=RequestResponse)
async def decide_request(
    request_id: uuid.UUID,
    payload: DecisionPayload,
    session: SessionDep,
    auth: AuthDep,
) -> RequestResponse:
    """Approve or reject the current stage. The X-Role header must own the stage."""
    return await request_service.decide_request(
        session,
        request_id,
        acting_role=auth.role,
        approver_id=auth.user_id,
        decision=payload.decision,
        signature_ref=payload.signature_ref,
        note=payload.note,
    )


@requests_router.post("/{request_id}/cancel", response_model=RequestResponse)
async def cancel_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> RequestResponse:
    """Withdraw a request that has not passed the manager yet."""
    return await request_service.cancel_request(session, auth, request_id)


@requests_router.get("/{request_id}/stages", response_model=StageListResponse)
async def list_stages(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> StageListResponse:
    """Approval history of a request."""
    return await request_service.list_stages(session, auth, request_id)
