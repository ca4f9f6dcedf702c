# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from app.api.deps import AdminDep, AuthDep
from app.db import SessionDep
from app.schemas.policy import (
    CreateLeavePolicyRequest,
    CreateLeaveTypeRequest,
    CreateOvertimePolicyRequest,
    LeavePolicyListResponse,
    LeavePolicyResponse,
    LeaveTypeListResponse,
    LeaveTypeResponse,
    OvertimePolicyListResponse,
    OvertimePolicyResponse,
)
from app.services import policy as policy_service

leave_types_router = APIRouter(prefix="/leave-types", tags=["leave-types"])
leave_policies_router = APIRouter(prefix="/leave-policies", tags=["leave-policies"])
overtime_policies_router = APIRouter(prefix="/overtime-policies", tags=["overtime-policies"])


# ---------------------------------------------------------------------------
# Leave types
# ---------------------------------------------------------------------------


@leave_types_router.post("", response_model=LeaveTypeResponse, status_code=status.HTTP_201_CREATED)
async def create_leave_type(
    payload: CreateLeaveTypeRequest,
    session: SessionDep,
    auth: AdminDep,
) -> LeaveTypeResponse:
    """Create a leave type (admin only)."""
    return await policy_service.create_leave_type(session, auth, payload)


@leave_types_router.get("", response_model=LeaveTypeListResponse)
async def list_leave_types(
    session: SessionDep,
    _auth: AuthDep,
    active_only: bool = Query(default=False),
) -> LeaveTypeListResponse:
    return await policy_service.list_leave_types(session, active_only=active_only)


# ---------------------------------------------------------------------------
# Leave policies
# ---------------------------------------------------------------------------


@leave_policies_router.post("", response_model=LeavePolicyResponse, status_code=status.HTTP_201_CREATED)
async def create_leave_policy(
    payload: CreateLeavePolicyRequest,
    session: SessionDep,
    auth: AdminDep,
) -> LeavePolicyResponse:
    """Create a leave policy with its rules (admin only)."""
    return await policy_service.create_leave_policy(session, auth, payload)


@leave_policies_router.get("", response_model=LeavePolicyListResponse)
async def list_leave_policies(
    session: SessionDep,
    _auth: AuthDep,
    leave_type_id: uuid.UUID | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> LeavePolicyListResponse:
    return await policy_service.list_leave_policies(session, leave_type_id=leave_type_id, offset=offset, limit=limit)


@leave_policies_router.get("/{policy_id}", response_model=LeavePolicyResponse)
async def get_leave_policy(
    policy_id: uuid.UUID,
    session: SessionDep,
    _auth: AuthDep,
) -> LeavePolicyResponse:
    return await policy_service.get_leave_policy(session, policy_id)


@leave_policies_router.post("/{policy_id}/deactivate", response_model=LeavePolicyResponse)
async def deactivate_leave_policy(
    policy_id: uuid.UUID,
    session: SessionDep,
    auth: AdminDep,
) -> LeavePolicyResponse:
    """Retire a policy (admin only)."""
    return await policy_service.deactivate_leave_policy(session, auth, policy_id)


# ---------------------------------------------------------------------------
# Overtime policies
# ---------------------------------------------------------------------------


@overtime_policies_router.post("", response_model=OvertimePolicyResponse, status_code=status.HTTP_201_CREATED)
async def create_overtime_policy(
    payload: CreateOvertimePolicyRequest,
    session: SessionDep,
    auth: AdminDep,
) -> OvertimePolicyResponse:
    """Create an overtime policy (admin only)."""
    return await policy_service.create_overtime_policy(session, auth, payload)


@overtime_policies_router.get("", response_model=OvertimePolicyListResponse)
async def list_overtime_policies(
    session: SessionDep,
    _auth: AuthDep,
) -> OvertimePolicyListResponse:
    return await policy_service.list_overtime_policies(session)
