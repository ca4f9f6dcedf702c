# ruff: noqa: TC003
"""Time entry lifecycle: clocking, breaks, manual entries and approval.

Clock-based entries go ACTIVE -> COMPLETED. Manual entries start as DRAFT
and go through SUBMITTED to APPROVED, or to REJECTED and back to DRAFT.
Corrections never touch the entry they correct; they are new SUBMITTED
entries pointing at it, and only count once approved.
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from app.config import get_settings
from app.db import with_storage_retry
from app.exceptions import ConflictError, InvalidTimeSequenceError, InvalidTransitionError, NotFoundError
from app.models.base import ensure_utc
from app.models.enums import AuditAction, AuditEntityType, BreakType, TimeEntryAction, TimeEntryStatus
from app.models.time_entry import BreakEntry, TimeEntry
from app.schemas.time_entry import BreakResponse, TimeEntryListResponse, TimeEntryResponse
from app.services.audit import model_to_audit_dict, write_audit_log
from app.services.clock import get_clock
from app.services.employee import require_employee
from app.services.ledger import SYSTEM_ACTOR_ID
from app.services.overtime import (
    apply_breakdown,
    compute_hours,
    pay_week_of,
    reallocate_pay_week,
    resolve_overtime_policy,
    weekly_regular_minutes_before,
)
from app.services.workflow import list_status_history, record_status_change, transition

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import date, datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from app.schemas.auth import AuthContext
    from app.schemas.leave import StatusHistoryListResponse
    from app.schemas.time_entry import (
        BreakInput,
        ClockInPayload,
        ClockOutPayload,
        CorrectionPayload,
        ManualEntryPayload,
        StartBreakPayload,
        TimeDecisionPayload,
    )

logger = logging.getLogger(__name__)

TIME_TRANSITIONS: dict[tuple[TimeEntryStatus, TimeEntryAction], TimeEntryStatus] = {
    (TimeEntryStatus.ACTIVE, TimeEntryAction.CLOCK_OUT): TimeEntryStatus.COMPLETED,
    (TimeEntryStatus.DRAFT, TimeEntryAction.SUBMIT): TimeEntryStatus.SUBMITTED,
    (TimeEntryStatus.SUBMITTED, TimeEntryAction.APPROVE): TimeEntryStatus.APPROVED,
    (TimeEntryStatus.SUBMITTED, TimeEntryAction.REJECT): TimeEntryStatus.REJECTED,
    (TimeEntryStatus.REJECTED, TimeEntryAction.REOPEN): TimeEntryStatus.DRAFT,
}

MAX_BREAK_MINUTES: dict[BreakType, int] = {
    BreakType.SHORT_BREAK: 30,
    BreakType.LUNCH: 120,
    BreakType.PERSONAL: 60,
}

_ENTITY = "time entry"
_CORRECTABLE = (TimeEntryStatus.APPROVED.value, TimeEntryStatus.COMPLETED.value)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _build_break_response(brk: BreakEntry) -> BreakResponse:
    return BreakResponse(
        id=brk.id,
        time_entry_id=brk.time_entry_id,
        break_type=BreakType(brk.break_type),
        start_at=brk.start_at,
        end_at=brk.end_at,
        paid=brk.paid,
        duration_minutes=brk.duration_minutes,
    )


def _build_entry_response(entry: TimeEntry, breaks: Sequence[BreakEntry]) -> TimeEntryResponse:
    return TimeEntryResponse(
        id=entry.id,
        employee_id=entry.employee_id,
        clock_in=entry.clock_in,
        clock_out=entry.clock_out,
        latitude=entry.latitude,
        longitude=entry.longitude,
        location_accuracy=entry.location_accuracy,
        status=TimeEntryStatus(entry.status),
        manual_entry=entry.manual_entry,
        split_at_midnight=entry.split_at_midnight,
        total_minutes=entry.total_minutes,
        regular_minutes=entry.regular_minutes,
        overtime_minutes=entry.overtime_minutes,
        double_time_minutes=entry.double_time_minutes,
        overtime_policy_id=entry.overtime_policy_id,
        approved_by=entry.approved_by,
        approved_at=entry.approved_at,
        corrects_entry_id=entry.corrects_entry_id,
        notes=entry.notes,
        breaks=[_build_break_response(b) for b in breaks],
        created_at=entry.created_at,
    )


async def _get_entry_for_update(session: AsyncSession, entry_id: uuid.UUID) -> TimeEntry:
    result = await session.execute(select(TimeEntry).where(col(TimeEntry.id) == entry_id).with_for_update())
    entry = result.scalar_one_or_none()
    if entry is None:
        msg = f"Time entry {entry_id} not found"
        raise NotFoundError(msg)
    return entry


async def _load_breaks(session: AsyncSession, entry_id: uuid.UUID) -> list[BreakEntry]:
    result = await session.execute(
        select(BreakEntry).where(col(BreakEntry.time_entry_id) == entry_id).order_by(col(BreakEntry.start_at))
    )
    return list(result.scalars().all())


def _validate_window(operation: str, clock_in: datetime, clock_out: datetime) -> None:
    start, end = ensure_utc(clock_in), ensure_utc(clock_out)
    if end <= start:
        raise InvalidTimeSequenceError(operation, "clock-out must be after clock-in")
    max_minutes = get_settings().max_daily_minutes
    if (end - start).total_seconds() / 60 > max_minutes:
        raise InvalidTimeSequenceError(operation, f"entry cannot exceed {max_minutes} minutes")


def _validate_breaks(operation: str, clock_in: datetime, clock_out: datetime, breaks: Sequence[BreakInput]) -> None:
    """Breaks must sit inside the shift, respect their maximum length and not overlap."""
    start, end = ensure_utc(clock_in), ensure_utc(clock_out)
    ordered = sorted(breaks, key=lambda b: ensure_utc(b.start_at))
    previous_end: datetime | None = None
    for brk in ordered:
        brk_start, brk_end = ensure_utc(brk.start_at), ensure_utc(brk.end_at)
        if brk_start < start or brk_end > end:
            raise InvalidTimeSequenceError(operation, "breaks must fall within the entry")
        limit = MAX_BREAK_MINUTES[brk.break_type]
        if (brk_end - brk_start).total_seconds() / 60 > limit:
            raise InvalidTimeSequenceError(operation, f"{brk.break_type} break cannot exceed {limit} minutes")
        if previous_end is not None and brk_start < previous_end:
            raise InvalidTimeSequenceError(operation, "breaks cannot overlap")
        previous_end = brk_end


async def _check_no_overlap(
    session: AsyncSession,
    employee_id: uuid.UUID,
    clock_in: datetime,
    clock_out: datetime,
    *,
    ignore_ids: Sequence[uuid.UUID] = (),
) -> None:
    """Reject a manual shift overlapping another live entry of the same employee."""
    filters = [
        col(TimeEntry.employee_id) == employee_id,
        col(TimeEntry.status) != TimeEntryStatus.REJECTED.value,
        col(TimeEntry.clock_in) < ensure_utc(clock_out),
        func.coalesce(col(TimeEntry.clock_out), col(TimeEntry.clock_in)) > ensure_utc(clock_in),
    ]
    if ignore_ids:
        filters.append(col(TimeEntry.id).not_in(list(ignore_ids)))
    result = await session.execute(select(TimeEntry.id).where(*filters).limit(1))
    existing = result.scalar_one_or_none()
    if existing is not None:
        msg = f"Entry overlaps existing time entry {existing}"
        raise ConflictError(msg, details={"time_entry_id": str(existing)})


async def _recompute_hours(
    session: AsyncSession,
    entry: TimeEntry,
    breaks: Sequence[BreakEntry],
    *,
    exclude_entry_id: uuid.UUID | None = None,
) -> None:
    """Run the overtime calculator against the employee's policy and pay week."""
    employee = await require_employee(entry.employee_id)
    policy = await resolve_overtime_policy(session, employee, ensure_utc(entry.clock_in).date())
    prior = await weekly_regular_minutes_before(
        session, entry.employee_id, entry.clock_in, exclude_entry_id=exclude_entry_id
    )
    breakdown = compute_hours(
        entry, breaks, policy, prior_week_regular_minutes=prior, split_at_midnight=entry.split_at_midnight
    )
    apply_breakdown(entry, breakdown, policy)


async def _settle_pay_weeks(session: AsyncSession, entry: TimeEntry) -> None:
    """Re-run the weekly allocation after an entry starts counting.

    An approved correction also settles the week of the entry it replaces.
    """
    employee = await require_employee(entry.employee_id)
    moments = [entry.clock_in]
    if entry.corrects_entry_id is not None:
        original = await session.get(TimeEntry, entry.corrects_entry_id)
        if original is not None:
            moments.append(original.clock_in)

    settled: set[date] = set()
    for moment in moments:
        week = pay_week_of(moment)
        if week in settled:
            continue
        settled.add(week)
        await reallocate_pay_week(session, employee, moment)


def _add_breaks(session: AsyncSession, entry_id: uuid.UUID, breaks: Sequence[BreakInput]) -> list[BreakEntry]:
    rows = [
        BreakEntry(
            time_entry_id=entry_id,
            break_type=b.break_type.value,
            start_at=b.start_at,
            end_at=b.end_at,
            paid=b.paid,
        )
        for b in breaks
    ]
    session.add_all(rows)
    return rows


async def _apply_transition(
    session: AsyncSession,
    entry: TimeEntry,
    action: TimeEntryAction,
    *,
    actor_id: uuid.UUID,
    note: str | None,
) -> None:
    """Move a locked entry to its next state, writing history and audit."""
    current = TimeEntryStatus(entry.status)
    new_status = transition(TIME_TRANSITIONS, _ENTITY, current, action)
    before = model_to_audit_dict(entry)

    if new_status == TimeEntryStatus.APPROVED:
        entry.approved_by = actor_id
        entry.approved_at = get_clock().now()

    entry.status = new_status.value
    session.add(entry)
    if new_status in (TimeEntryStatus.APPROVED, TimeEntryStatus.COMPLETED):
        await session.flush()
        await _settle_pay_weeks(session, entry)
    record_status_change(
        session,
        entity_type=AuditEntityType.TIME_ENTRY,
        entity_id=entry.id,
        from_status=current.value,
        to_status=new_status.value,
        actor_id=actor_id,
        note=note,
    )
    await session.flush()
    await write_audit_log(
        session,
        actor_id=actor_id,
        entity_type=AuditEntityType.TIME_ENTRY,
        entity_id=entry.id,
        action=AuditAction(action.value),
        before_json=before,
        after_json=model_to_audit_dict(entry),
    )


async def _close_entry(
    session: AsyncSession,
    entry: TimeEntry,
    clock_out: datetime,
    *,
    actor_id: uuid.UUID,
    notes: str | None,
    split_at_midnight: bool = False,
) -> list[BreakEntry]:
    """Clock out a locked ACTIVE entry and classify its hours."""
    if entry.status != TimeEntryStatus.ACTIVE.value:
        raise InvalidTransitionError(_ENTITY, entry.status, TimeEntryAction.CLOCK_OUT)
    breaks = await _load_breaks(session, entry.id)
    if any(b.end_at is None for b in breaks):
        raise InvalidTimeSequenceError("clock_out", "cannot clock out during an open break")
    _validate_window("clock_out", entry.clock_in, clock_out)

    entry.clock_out = clock_out
    entry.split_at_midnight = split_at_midnight
    if notes:
        entry.notes = f"{entry.notes}\n{notes}" if entry.notes else notes
    await _recompute_hours(session, entry, breaks)
    await _apply_transition(session, entry, TimeEntryAction.CLOCK_OUT, actor_id=actor_id, note=notes)
    return breaks


# ---------------------------------------------------------------------------
# Clocking and breaks
# ---------------------------------------------------------------------------


async def clock_in(session: AsyncSession, auth: AuthContext, payload: ClockInPayload) -> TimeEntryResponse:
    """Open an ACTIVE entry. An employee can have only one open entry."""
    await require_employee(payload.employee_id)

    async def _operation() -> TimeEntry:
        open_entry = (
            await session.execute(
                select(TimeEntry.id).where(
                    col(TimeEntry.employee_id) == payload.employee_id,
                    col(TimeEntry.status) == TimeEntryStatus.ACTIVE.value,
                )
            )
        ).scalar_one_or_none()
        if open_entry is not None:
            msg = f"Employee {payload.employee_id} is already clocked in"
            raise ConflictError(msg, details={"time_entry_id": str(open_entry)})

        entry = TimeEntry(
            employee_id=payload.employee_id,
            clock_in=get_clock().now(),
            latitude=payload.latitude,
            longitude=payload.longitude,
            location_accuracy=payload.location_accuracy,
            status=TimeEntryStatus.ACTIVE.value,
            notes=payload.notes,
        )
        try:
            async with session.begin_nested():
                session.add(entry)
        except IntegrityError:
            msg = f"Employee {payload.employee_id} is already clocked in"
            raise ConflictError(msg) from None

        record_status_change(
            session,
            entity_type=AuditEntityType.TIME_ENTRY,
            entity_id=entry.id,
            from_status=None,
            to_status=TimeEntryStatus.ACTIVE.value,
            actor_id=auth.user_id,
        )
        await session.flush()
        await write_audit_log(
            session,
            actor_id=auth.user_id,
            entity_type=AuditEntityType.TIME_ENTRY,
            entity_id=entry.id,
            action=AuditAction.CLOCK_IN,
            after_json=model_to_audit_dict(entry),
        )
        await session.commit()
        return entry

    entry = await with_storage_retry(session, _operation)
    logger.info("Employee %s clocked in (entry %s)", entry.employee_id, entry.id)
    return _build_entry_response(entry, [])


async def start_break(
    session: AsyncSession,
    auth: AuthContext,
    entry_id: uuid.UUID,
    payload: StartBreakPayload,
) -> TimeEntryResponse:
    """Start a break on an ACTIVE entry. Only one break can be open at a time."""

    async def _operation() -> tuple[TimeEntry, list[BreakEntry]]:
        entry = await _get_entry_for_update(session, entry_id)
        if entry.status != TimeEntryStatus.ACTIVE.value:
            raise InvalidTransitionError(_ENTITY, entry.status, "START_BREAK")
        breaks = await _load_breaks(session, entry.id)
        if any(b.end_at is None for b in breaks):
            raise InvalidTimeSequenceError("start_break", "a break is already in progress")

        brk = BreakEntry(
            time_entry_id=entry.id,
            break_type=payload.break_type.value,
            start_at=get_clock().now(),
            paid=payload.paid,
        )
        session.add(brk)
        await session.flush()
        await write_audit_log(
            session,
            actor_id=auth.user_id,
            entity_type=AuditEntityType.TIME_ENTRY,
            entity_id=entry.id,
            action=AuditAction.UPDATE,
            after_json={"break_id": str(brk.id), "break_type": brk.break_type, "started_at": brk.start_at.isoformat()},
        )
        await session.commit()
        return entry, [*breaks, brk]

    entry, breaks = await with_storage_retry(session, _operation)
    return _build_entry_response(entry, breaks)


async def end_break(session: AsyncSession, auth: AuthContext, entry_id: uuid.UUID) -> TimeEntryResponse:
    """End the open break on an ACTIVE entry.

    Live breaks are closed even past their maximum length; the overrun is
    logged so it can be followed up.
    """

    async def _operation() -> tuple[TimeEntry, list[BreakEntry]]:
        entry = await _get_entry_for_update(session, entry_id)
        breaks = await _load_breaks(session, entry.id)
        open_break = next((b for b in breaks if b.end_at is None), None)
        if open_break is None:
            raise InvalidTimeSequenceError("end_break", "no break in progress")

        now = get_clock().now()
        if now <= ensure_utc(open_break.start_at):
            raise InvalidTimeSequenceError("end_break", "break must end after it starts")
        open_break.end_at = now
        session.add(open_break)

        limit = MAX_BREAK_MINUTES[BreakType(open_break.break_type)]
        duration = int((now - ensure_utc(open_break.start_at)).total_seconds() // 60)
        if duration > limit:
            logger.warning(
                "Break %s on entry %s lasted %d minutes (limit %d)", open_break.id, entry.id, duration, limit
            )

        await session.flush()
        await write_audit_log(
            session,
            actor_id=auth.user_id,
            entity_type=AuditEntityType.TIME_ENTRY,
            entity_id=entry.id,
            action=AuditAction.UPDATE,
            after_json={"break_id": str(open_break.id), "ended_at": now.isoformat(), "duration_minutes": duration},
        )
        await session.commit()
        return entry, breaks

    entry, breaks = await with_storage_retry(session, _operation)
    return _build_entry_response(entry, breaks)


async def clock_out(
    session: AsyncSession,
    auth: AuthContext,
    entry_id: uuid.UUID,
    payload: ClockOutPayload | None = None,
) -> TimeEntryResponse:
    """Close an ACTIVE entry and attach the overtime breakdown.

    1. Lock the entry; an open break blocks clock-out.
    2. Validate the shift length against the daily maximum.
    3. Classify hours with the applicable overtime policy, per calendar day
       when ``split_at_midnight`` is set.
    4. Record ACTIVE -> COMPLETED with history and audit, re-run the pay
       week's allocation, then commit.
    """

    async def _operation() -> tuple[TimeEntry, list[BreakEntry]]:
        entry = await _get_entry_for_update(session, entry_id)
        breaks = await _close_entry(
            session,
            entry,
            get_clock().now(),
            actor_id=auth.user_id,
            notes=payload.notes if payload else None,
            split_at_midnight=payload.split_at_midnight if payload else False,
        )
        await session.commit()
        return entry, breaks

    entry, breaks = await with_storage_retry(session, _operation)
    logger.info(
        "Employee %s clocked out (entry %s, %s regular / %s overtime minutes)",
        entry.employee_id,
        entry.id,
        entry.regular_minutes,
        entry.overtime_minutes,
    )
    return _build_entry_response(entry, breaks)


async def auto_clock_out_stale_entries(session: AsyncSession, *, after_hours: int | None = None) -> int:
    """Clock out ACTIVE entries open longer than ``after_hours``.

    The clock-out time is set to the threshold, not to now. Open breaks are
    closed at the same instant. Each entry commits on its own; a failure is
    logged and the sweep continues.
    """
    hours = after_hours if after_hours is not None else get_settings().auto_clock_out_after_hours
    cutoff = get_clock().now() - timedelta(hours=hours)
    result = await session.execute(
        select(TimeEntry.id).where(
            col(TimeEntry.status) == TimeEntryStatus.ACTIVE.value,
            col(TimeEntry.clock_in) < cutoff,
        )
    )
    stale_ids = list(result.scalars().all())

    closed = 0
    for entry_id in stale_ids:
        try:
            entry = await _get_entry_for_update(session, entry_id)
            clock_out_at = ensure_utc(entry.clock_in) + timedelta(hours=hours)
            for brk in await _load_breaks(session, entry.id):
                if brk.end_at is not None:
                    continue
                if ensure_utc(brk.start_at) >= clock_out_at:
                    await session.delete(brk)
                else:
                    brk.end_at = clock_out_at
                    session.add(brk)
            await session.flush()
            await _close_entry(
                session,
                entry,
                clock_out_at,
                actor_id=SYSTEM_ACTOR_ID,
                notes=f"Auto-clocked out after {hours} hours",
            )
            await session.commit()
            closed += 1
        except Exception:
            await session.rollback()
            logger.exception("Failed to auto-clock-out time entry %s", entry_id)
    if closed:
        logger.info("Auto-clocked out %d stale time entries", closed)
    return closed


# ---------------------------------------------------------------------------
# Manual entries and approval
# ---------------------------------------------------------------------------


async def create_manual_entry(
    session: AsyncSession,
    auth: AuthContext,
    payload: ManualEntryPayload,
) -> TimeEntryResponse:
    """Record a missed shift as a DRAFT with a preliminary hours breakdown."""
    await require_employee(payload.employee_id)
    _validate_window("create_manual_entry", payload.clock_in, payload.clock_out)
    _validate_breaks("create_manual_entry", payload.clock_in, payload.clock_out, payload.breaks)

    async def _operation() -> tuple[TimeEntry, list[BreakEntry]]:
        await _check_no_overlap(session, payload.employee_id, payload.clock_in, payload.clock_out)
        entry = TimeEntry(
            employee_id=payload.employee_id,
            clock_in=payload.clock_in,
            clock_out=payload.clock_out,
            status=TimeEntryStatus.DRAFT.value,
            manual_entry=True,
            split_at_midnight=payload.split_at_midnight,
            notes=payload.notes,
        )
        session.add(entry)
        await session.flush()
        breaks = _add_breaks(session, entry.id, payload.breaks)
        await _recompute_hours(session, entry, breaks)

        record_status_change(
            session,
            entity_type=AuditEntityType.TIME_ENTRY,
            entity_id=entry.id,
            from_status=None,
            to_status=TimeEntryStatus.DRAFT.value,
            actor_id=auth.user_id,
        )
        await session.flush()
        await write_audit_log(
            session,
            actor_id=auth.user_id,
            entity_type=AuditEntityType.TIME_ENTRY,
            entity_id=entry.id,
            action=AuditAction.CREATE,
            after_json=model_to_audit_dict(entry),
        )
        await session.commit()
        return entry, breaks

    entry, breaks = await with_storage_retry(session, _operation)
    return _build_entry_response(entry, breaks)


async def _decide(
    session: AsyncSession,
    auth: AuthContext,
    entry_id: uuid.UUID,
    action: TimeEntryAction,
    note: str | None,
) -> TimeEntryResponse:
    async def _operation() -> TimeEntry:
        entry = await _get_entry_for_update(session, entry_id)
        await _apply_transition(session, entry, action, actor_id=auth.user_id, note=note)
        await session.commit()
        return entry

    entry = await with_storage_retry(session, _operation)
    return _build_entry_response(entry, await _load_breaks(session, entry.id))


async def submit_time_entry(
    session: AsyncSession,
    auth: AuthContext,
    entry_id: uuid.UUID,
    payload: TimeDecisionPayload | None = None,
) -> TimeEntryResponse:
    return await _decide(session, auth, entry_id, TimeEntryAction.SUBMIT, payload.note if payload else None)


async def approve_time_entry(
    session: AsyncSession,
    auth: AuthContext,
    entry_id: uuid.UUID,
    payload: TimeDecisionPayload | None = None,
) -> TimeEntryResponse:
    """Approve a SUBMITTED entry and re-run the weekly allocation for its pay week."""
    response = await _decide(session, auth, entry_id, TimeEntryAction.APPROVE, payload.note if payload else None)
    logger.info("Time entry %s approved by %s", entry_id, auth.user_id)
    return response


async def reject_time_entry(
    session: AsyncSession,
    auth: AuthContext,
    entry_id: uuid.UUID,
    payload: TimeDecisionPayload | None = None,
) -> TimeEntryResponse:
    return await _decide(session, auth, entry_id, TimeEntryAction.REJECT, payload.note if payload else None)


async def reopen_time_entry(
    session: AsyncSession,
    auth: AuthContext,
    entry_id: uuid.UUID,
    payload: TimeDecisionPayload | None = None,
) -> TimeEntryResponse:
    """Send a REJECTED entry back to DRAFT for editing."""
    return await _decide(session, auth, entry_id, TimeEntryAction.REOPEN, payload.note if payload else None)


async def request_correction(
    session: AsyncSession,
    auth: AuthContext,
    entry_id: uuid.UUID,
    payload: CorrectionPayload,
) -> TimeEntryResponse:
    """File a correction for an APPROVED or COMPLETED entry.

    The original row is never modified. A new SUBMITTED manual entry with
    ``corrects_entry_id`` set goes through normal approval; once approved,
    it replaces the original in weekly totals.
    """
    _validate_window("request_correction", payload.clock_in, payload.clock_out)
    _validate_breaks("request_correction", payload.clock_in, payload.clock_out, payload.breaks)

    async def _operation() -> tuple[TimeEntry, list[BreakEntry]]:
        original = await _get_entry_for_update(session, entry_id)
        if original.status not in _CORRECTABLE:
            raise InvalidTransitionError(_ENTITY, original.status, "CORRECT")

        pending = (
            await session.execute(
                select(TimeEntry.id).where(
                    col(TimeEntry.corrects_entry_id) == original.id,
                    col(TimeEntry.status).in_([TimeEntryStatus.DRAFT.value, TimeEntryStatus.SUBMITTED.value]),
                )
            )
        ).scalar_one_or_none()
        if pending is not None:
            msg = f"Time entry {original.id} already has a pending correction"
            raise ConflictError(msg, details={"time_entry_id": str(pending)})

        await _check_no_overlap(
            session, original.employee_id, payload.clock_in, payload.clock_out, ignore_ids=[original.id]
        )

        correction = TimeEntry(
            employee_id=original.employee_id,
            clock_in=payload.clock_in,
            clock_out=payload.clock_out,
            latitude=original.latitude,
            longitude=original.longitude,
            location_accuracy=original.location_accuracy,
            status=TimeEntryStatus.SUBMITTED.value,
            manual_entry=True,
            corrects_entry_id=original.id,
            split_at_midnight=payload.split_at_midnight,
            notes=payload.notes,
        )
        session.add(correction)
        await session.flush()
        breaks = _add_breaks(session, correction.id, payload.breaks)
        await _recompute_hours(session, correction, breaks, exclude_entry_id=original.id)

        record_status_change(
            session,
            entity_type=AuditEntityType.TIME_ENTRY,
            entity_id=correction.id,
            from_status=None,
            to_status=TimeEntryStatus.SUBMITTED.value,
            actor_id=auth.user_id,
            note=f"Correction of {original.id}",
        )
        await session.flush()
        await write_audit_log(
            session,
            actor_id=auth.user_id,
            entity_type=AuditEntityType.TIME_ENTRY,
            entity_id=correction.id,
            action=AuditAction.CORRECT,
            before_json=model_to_audit_dict(original),
            after_json=model_to_audit_dict(correction),
        )
        await session.commit()
        return correction, breaks

    correction, breaks = await with_storage_retry(session, _operation)
    logger.info("Correction %s filed for time entry %s", correction.id, entry_id)
    return _build_entry_response(correction, breaks)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_time_entry_model(session: AsyncSession, entry_id: uuid.UUID) -> TimeEntry:
    entry = await session.get(TimeEntry, entry_id)
    if entry is None:
        msg = f"Time entry {entry_id} not found"
        raise NotFoundError(msg)
    return entry


async def get_time_entry(session: AsyncSession, entry_id: uuid.UUID) -> TimeEntryResponse:
    entry = await get_time_entry_model(session, entry_id)
    return _build_entry_response(entry, await _load_breaks(session, entry.id))


async def list_time_entries(
    session: AsyncSession,
    *,
    employee_ids: list[uuid.UUID] | None = None,
    status: TimeEntryStatus | None = None,
    offset: int = 0,
    limit: int = 50,
) -> TimeEntryListResponse:
    """List entries, most recent clock-in first."""
    filters = []
    if employee_ids is not None:
        filters.append(col(TimeEntry.employee_id).in_(employee_ids))
    if status is not None:
        filters.append(col(TimeEntry.status) == status.value)

    count_result = await session.execute(select(func.count()).select_from(TimeEntry).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(TimeEntry).where(*filters).order_by(col(TimeEntry.clock_in).desc()).offset(offset).limit(limit)
    )
    entries = list(result.scalars().all())
    items = [_build_entry_response(e, await _load_breaks(session, e.id)) for e in entries]
    return TimeEntryListResponse(items=items, total=total)


async def get_time_entry_history(session: AsyncSession, entry_id: uuid.UUID) -> StatusHistoryListResponse:
    await get_time_entry_model(session, entry_id)
    return await list_status_history(session, AuditEntityType.TIME_ENTRY, entry_id)
