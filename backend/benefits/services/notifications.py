# ruff: noqa: TC003
from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Protocol, runtime_checkable

from pydantic import BaseModel

from benefits.models.enums import BenefitType, RequestStatus


class StatusChangeEvent(BaseModel):
    """Emitted after every committed status transition."""

    request_id: uuid.UUID
    employee_id: uuid.UUID
    benefit_type: BenefitType
    new_status: RequestStatus
    net_amount: Decimal


@runtime_checkable
class NotificationService(Protocol):
    """Interface for the outbound notification service."""

    async def publish(self, event: StatusChangeEvent) -> None:
        """Deliver a status change. Formatting and delivery are external."""
        ...


class InMemoryNotificationService:
    """In-memory stub that records published events."""

    def __init__(self) -> None:
        self.events: list[StatusChangeEvent] = []

    async def publish(self, event: StatusChangeEvent) -> None:
        self.events.append(event)


_notification_service: NotificationService = InMemoryNotificationService()


def get_notification_service() -> NotificationService:
    return _notification_service


def set_notification_service(service: NotificationService) -> None:
    """Override the service (for testing or production wiring)."""
    global _notification_service
    _notification_service = service
