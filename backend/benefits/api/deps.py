# ruff: noqa: B008, TC003
from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import Depends, Header, status

from benefits.exceptions import AppError
from benefits.schemas.auth import AuthContext
from benefits.services.employee import EmployeeInfo, get_employee_service


async def get_auth_context(
    x_user_id: uuid.UUID = Header(),
    x_role: str = Header(default="employee"),
) -> AuthContext:
    """Extract dev auth context from request headers."""
    return AuthContext(user_id=x_user_id, role=x_role)


AuthDep = Annotated[AuthContext, Depends(get_auth_context)]


async def require_admin(
    auth: AuthDep,
) -> AuthContext:
    """Require admin role for the request."""
    if not auth.is_admin:
        raise AppError("Admin access required", status_code=status.HTTP_403_FORBIDDEN)
    return auth


AdminDep = Annotated[AuthContext, Depends(require_admin)]


async def get_visible_employee(employee_id: uuid.UUID, auth: AuthDep) -> EmployeeInfo:
    """Resolve a path employee the caller may see: themselves, or anyone for reviewers."""
    if not auth.can_view(employee_id):
        raise AppError("Not authorized to view this employee", status_code=status.HTTP_403_FORBIDDEN)
    employee = await get_employee_service().get_employee(employee_id)
    if employee is None:
        raise AppError("Employee not found", status_code=status.HTTP_404_NOT_FOUND)
    return employee


EmployeeDep = Annotated[EmployeeInfo, Depends(get_visible_employee)]
