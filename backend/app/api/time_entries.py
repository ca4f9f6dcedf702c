# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Query, status

from app.api.deps import AdminDep, AuthDep, ensure_can_act_for, ensure_can_manage, visible_employee_ids
from app.db import SessionDep
from app.models.enums import TimeEntryStatus
from app.schemas.leave import StatusHistoryListResponse
from app.schemas.time_entry import (
    AutoClockOutResponse,
    ClockInPayload,
    ClockOutPayload,
    CorrectionPayload,
    ManualEntryPayload,
    StartBreakPayload,
    TimeDecisionPayload,
    TimeEntryListResponse,
    TimeEntryResponse,
    WeeklyOvertimeResponse,
)
from app.services import time_workflow
from app.services.employee import require_employee
from app.services.overtime import detect_weekly_overtime

time_entries_router = APIRouter(prefix="/time-entries", tags=["time-entries"])


async def _entry_owner(session: SessionDep, entry_id: uuid.UUID) -> uuid.UUID:
    entry = await time_workflow.get_time_entry_model(session, entry_id)
    return entry.employee_id


# ---------------------------------------------------------------------------
# Clocking
# ---------------------------------------------------------------------------


@time_entries_router.post("/clock-in", response_model=TimeEntryResponse, status_code=status.HTTP_201_CREATED)
async def clock_in(
    payload: ClockInPayload,
    session: SessionDep,
    auth: AuthDep,
) -> TimeEntryResponse:
    ensure_can_act_for(auth, payload.employee_id)
    return await time_workflow.clock_in(session, auth, payload)


@time_entries_router.post("/{entry_id}/clock-out", response_model=TimeEntryResponse)
async def clock_out(
    entry_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    payload: ClockOutPayload | None = None,
) -> TimeEntryResponse:
    """Close an open entry and compute its regular and overtime minutes."""
    ensure_can_act_for(auth, await _entry_owner(session, entry_id))
    return await time_workflow.clock_out(session, auth, entry_id, payload)


@time_entries_router.post("/{entry_id}/breaks/start", response_model=TimeEntryResponse)
async def start_break(
    entry_id: uuid.UUID,
    payload: StartBreakPayload,
    session: SessionDep,
    auth: AuthDep,
) -> TimeEntryResponse:
    ensure_can_act_for(auth, await _entry_owner(session, entry_id))
    return await time_workflow.start_break(session, auth, entry_id, payload)


@time_entries_router.post("/{entry_id}/breaks/end", response_model=TimeEntryResponse)
async def end_break(
    entry_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> TimeEntryResponse:
    ensure_can_act_for(auth, await _entry_owner(session, entry_id))
    return await time_workflow.end_break(session, auth, entry_id)


@time_entries_router.post("/auto-clock-out", response_model=AutoClockOutResponse)
async def auto_clock_out(
    session: SessionDep,
    _auth: AdminDep,
    after_hours: int | None = Query(default=None, ge=1, le=24),
) -> AutoClockOutResponse:
    """Close entries left open past the threshold (admin only)."""
    closed = await time_workflow.auto_clock_out_stale_entries(session, after_hours=after_hours)
    return AutoClockOutResponse(closed=closed)


# ---------------------------------------------------------------------------
# Manual entries, corrections and approval
# ---------------------------------------------------------------------------


@time_entries_router.post("/manual", response_model=TimeEntryResponse, status_code=status.HTTP_201_CREATED)
async def create_manual_entry(
    payload: ManualEntryPayload,
    session: SessionDep,
    auth: AuthDep,
) -> TimeEntryResponse:
    """Record a missed shift as a draft."""
    ensure_can_act_for(auth, payload.employee_id)
    return await time_workflow.create_manual_entry(session, auth, payload)


@time_entries_router.post(
    "/{entry_id}/corrections", response_model=TimeEntryResponse, status_code=status.HTTP_201_CREATED
)
async def request_correction(
    entry_id: uuid.UUID,
    payload: CorrectionPayload,
    session: SessionDep,
    auth: AuthDep,
) -> TimeEntryResponse:
    """File a correction; the original entry is left untouched."""
    ensure_can_act_for(auth, await _entry_owner(session, entry_id))
    return await time_workflow.request_correction(session, auth, entry_id, payload)


@time_entries_router.post("/{entry_id}/submit", response_model=TimeEntryResponse)
async def submit_time_entry(
    entry_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    payload: TimeDecisionPayload | None = None,
) -> TimeEntryResponse:
    ensure_can_act_for(auth, await _entry_owner(session, entry_id))
    return await time_workflow.submit_time_entry(session, auth, entry_id, payload)


@time_entries_router.post("/{entry_id}/approve", response_model=TimeEntryResponse)
async def approve_time_entry(
    entry_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    payload: TimeDecisionPayload | None = None,
) -> TimeEntryResponse:
    """Approve a submitted entry (manager or admin)."""
    ensure_can_manage(auth, await _entry_owner(session, entry_id))
    return await time_workflow.approve_time_entry(session, auth, entry_id, payload)


@time_entries_router.post("/{entry_id}/reject", response_model=TimeEntryResponse)
async def reject_time_entry(
    entry_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    payload: TimeDecisionPayload | None = None,
) -> TimeEntryResponse:
    """Reject a submitted entry (manager or admin)."""
    ensure_can_manage(auth, await _entry_owner(session, entry_id))
    return await time_workflow.reject_time_entry(session, auth, entry_id, payload)


@time_entries_router.post("/{entry_id}/reopen", response_model=TimeEntryResponse)
async def reopen_time_entry(
    entry_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    payload: TimeDecisionPayload | None = None,
) -> TimeEntryResponse:
    ensure_can_act_for(auth, await _entry_owner(session, entry_id))
    return await time_workflow.reopen_time_entry(session, auth, entry_id, payload)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@time_entries_router.get("", response_model=TimeEntryListResponse)
async def list_time_entries(
    session: SessionDep,
    auth: AuthDep,
    employee_id: uuid.UUID | None = Query(default=None),
    status_filter: TimeEntryStatus | None = Query(default=None, alias="status"),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> TimeEntryListResponse:
    return await time_workflow.list_time_entries(
        session,
        employee_ids=visible_employee_ids(auth, employee_id),
        status=status_filter,
        offset=offset,
        limit=limit,
    )


@time_entries_router.get("/weekly-overtime", response_model=WeeklyOvertimeResponse)
async def weekly_overtime(
    session: SessionDep,
    auth: AuthDep,
    employee_id: uuid.UUID = Query(),
    week_of: date = Query(),
) -> WeeklyOvertimeResponse:
    """Counted hours for the pay week containing ``week_of``."""
    ensure_can_act_for(auth, employee_id)
    employee = await require_employee(employee_id)
    summary = await detect_weekly_overtime(session, employee, week_of)
    return WeeklyOvertimeResponse(
        employee_id=summary.employee_id,
        week_start=summary.week_start,
        total_minutes=summary.total_minutes,
        regular_minutes=summary.regular_minutes,
        overtime_minutes=summary.overtime_minutes,
        double_time_minutes=summary.double_time_minutes,
        weekly_threshold_minutes=summary.weekly_threshold_minutes,
        exceeds_weekly_threshold=summary.exceeds_weekly_threshold,
    )


@time_entries_router.get("/{entry_id}", response_model=TimeEntryResponse)
async def get_time_entry(
    entry_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> TimeEntryResponse:
    ensure_can_act_for(auth, await _entry_owner(session, entry_id))
    return await time_workflow.get_time_entry(session, entry_id)


@time_entries_router.get("/{entry_id}/history", response_model=StatusHistoryListResponse)
async def get_time_entry_history(
    entry_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> StatusHistoryListResponse:
    ensure_can_act_for(auth, await _entry_owner(session, entry_id))
    return await time_workflow.get_time_entry_history(session, entry_id)
