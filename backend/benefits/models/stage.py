# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import UTC, datetime

import sqlalchemy as sa
from sqlmodel import Field

from benefits.models.base import UUIDBase


def _now_utc() -> datetime:
    return datetime.now(UTC)


class ApprovalStage(UUIDBase, table=True):
    """A completed, role-gated approval step on a request."""

    __tablename__ = "approval_stage"

    request_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("benefit_request.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    stage: str = Field(max_length=50)
    role: str = Field(max_length=50)
    approver_id: uuid.UUID
    decision: str = Field(max_length=20)
    signature_ref: str | None = Field(default=None, max_length=255)
    note: str | None = None
    decided_at: datetime = Field(
        default_factory=_now_utc,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now()},
    )
