# ruff: noqa: TC003
from __future__ import annotations

import uuid

from pydantic import BaseModel

from benefits.models.enums import ApproverRole

# Roles allowed to read any employee's requests, budgets and usage.
REVIEWER_ROLES = frozenset({"admin", *(role.value for role in ApproverRole)})


class AuthContext(BaseModel):
    """Dev auth context extracted from request headers."""

    user_id: uuid.UUID
    role: str = "employee"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES

    def can_view(self, employee_id: uuid.UUID) -> bool:
        return self.user_id == employee_id or self.is_reviewer
