# ruff: noqa: B008, TC003
from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import Depends, Header, status

from app.exceptions import AppError
from app.schemas.auth import AuthContext


def _split_header(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


async def get_auth_context(
    x_user_id: uuid.UUID = Header(),
    x_roles: str = Header(default="employee"),
    x_employee_id: uuid.UUID | None = Header(default=None),
    x_managed_employee_ids: str | None = Header(default=None),
) -> AuthContext:
    """Extract the caller's identity from request headers.

    Authentication happens upstream; these headers are trusted as-is.
    """
    try:
        managed = [uuid.UUID(v) for v in _split_header(x_managed_employee_ids)]
    except ValueError:
        raise AppError(
            "X-Managed-Employee-Ids must be a comma-separated list of UUIDs",
            status_code=status.HTTP_400_BAD_REQUEST,
        ) from None
    return AuthContext(
        user_id=x_user_id,
        roles=_split_header(x_roles) or ["employee"],
        employee_id=x_employee_id,
        managed_employee_ids=managed,
    )


AuthDep = Annotated[AuthContext, Depends(get_auth_context)]


async def require_admin(
    auth: AuthDep,
) -> AuthContext:
    """Require the admin or hr role for the request."""
    if not auth.is_admin:
        raise AppError("Admin access required", status_code=status.HTTP_403_FORBIDDEN)
    return auth


AdminDep = Annotated[AuthContext, Depends(require_admin)]


def ensure_can_act_for(auth: AuthContext, employee_id: uuid.UUID) -> None:
    """The caller is the employee, one of their managers, or an admin."""
    if not auth.can_act_for(employee_id):
        raise AppError("Not allowed to act for this employee", status_code=status.HTTP_403_FORBIDDEN)


def ensure_can_manage(auth: AuthContext, employee_id: uuid.UUID) -> None:
    """The caller manages the employee or is an admin. Nobody approves their own records."""
    if not auth.can_manage(employee_id) or employee_id == auth.employee_id:
        raise AppError("Not allowed to review this employee's records", status_code=status.HTTP_403_FORBIDDEN)


def visible_employee_ids(auth: AuthContext, employee_id: uuid.UUID | None) -> list[uuid.UUID] | None:
    """Scope a list query to what the caller may see. None means no restriction."""
    if employee_id is not None:
        ensure_can_act_for(auth, employee_id)
        return [employee_id]
    if auth.is_admin:
        return None
    own = [auth.employee_id] if auth.employee_id is not None else []
    return [*own, *auth.managed_employee_ids]
