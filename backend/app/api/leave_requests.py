# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from app.api.deps import AdminDep, AuthDep, ensure_can_act_for, ensure_can_manage, visible_employee_ids
from app.db import SessionDep
from app.models.enums import LeaveRequestStatus
from app.schemas.balance import TransactionResponse
from app.schemas.leave import (
    DecisionPayload,
    EligibilityResponse,
    LeaveRequestListResponse,
    LeaveRequestPayload,
    LeaveRequestResponse,
    ReversalPayload,
    StatusHistoryListResponse,
)
from app.services import leave_workflow

leave_requests_router = APIRouter(prefix="/leave-requests", tags=["leave-requests"])


@leave_requests_router.post("/eligibility", response_model=EligibilityResponse)
async def check_eligibility(
    payload: LeaveRequestPayload,
    session: SessionDep,
    auth: AuthDep,
) -> EligibilityResponse:
    """Evaluate a candidate request without filing it."""
    ensure_can_act_for(auth, payload.employee_id)
    return await leave_workflow.evaluate_leave_request(session, payload)


@leave_requests_router.post("", response_model=LeaveRequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_leave_request(
    payload: LeaveRequestPayload,
    session: SessionDep,
    auth: AuthDep,
) -> LeaveRequestResponse:
    """Submit a leave request. Rule violations are returned as 422 with every violation listed."""
    ensure_can_act_for(auth, payload.employee_id)
    return await leave_workflow.submit_leave_request(session, auth, payload)


@leave_requests_router.get("", response_model=LeaveRequestListResponse)
async def list_leave_requests(
    session: SessionDep,
    auth: AuthDep,
    employee_id: uuid.UUID | None = Query(default=None),
    status_filter: LeaveRequestStatus | None = Query(default=None, alias="status"),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> LeaveRequestListResponse:
    """List requests visible to the caller."""
    return await leave_workflow.list_leave_requests(
        session,
        employee_ids=visible_employee_ids(auth, employee_id),
        status=status_filter,
        offset=offset,
        limit=limit,
    )


@leave_requests_router.get("/{request_id}", response_model=LeaveRequestResponse)
async def get_leave_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> LeaveRequestResponse:
    request = await leave_workflow.get_leave_request(session, request_id)
    ensure_can_act_for(auth, request.employee_id)
    return request


@leave_requests_router.get("/{request_id}/history", response_model=StatusHistoryListResponse)
async def get_request_history(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> StatusHistoryListResponse:
    request = await leave_workflow.get_leave_request(session, request_id)
    ensure_can_act_for(auth, request.employee_id)
    return await leave_workflow.get_request_history(session, request_id)


@leave_requests_router.post("/{request_id}/approve", response_model=LeaveRequestResponse)
async def approve_leave_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    payload: DecisionPayload | None = None,
) -> LeaveRequestResponse:
    """Approve a pending request and debit the balance (manager or admin)."""
    request = await leave_workflow.get_leave_request(session, request_id)
    ensure_can_manage(auth, request.employee_id)
    return await leave_workflow.approve_leave_request(session, auth, request_id, payload)


@leave_requests_router.post("/{request_id}/deny", response_model=LeaveRequestResponse)
async def deny_leave_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    payload: DecisionPayload | None = None,
) -> LeaveRequestResponse:
    """Deny a pending request (manager or admin)."""
    request = await leave_workflow.get_leave_request(session, request_id)
    ensure_can_manage(auth, request.employee_id)
    return await leave_workflow.deny_leave_request(session, auth, request_id, payload)


@leave_requests_router.post("/{request_id}/cancel", response_model=LeaveRequestResponse)
async def cancel_leave_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    payload: DecisionPayload | None = None,
) -> LeaveRequestResponse:
    """Withdraw a pending request."""
    request = await leave_workflow.get_leave_request(session, request_id)
    ensure_can_act_for(auth, request.employee_id)
    return await leave_workflow.cancel_leave_request(session, auth, request_id, payload)


@leave_requests_router.post(
    "/{request_id}/reverse", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED
)
async def reverse_approved_leave(
    request_id: uuid.UUID,
    payload: ReversalPayload,
    session: SessionDep,
    auth: AdminDep,
) -> TransactionResponse:
    """Credit back approved leave with a compensating adjustment (admin only)."""
    return await leave_workflow.reverse_approved_leave(session, auth, request_id, payload)
