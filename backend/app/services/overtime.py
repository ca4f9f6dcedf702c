# ruff: noqa: TC003
"""Regular / overtime / double-time classification for time entries.

Allocation is daily-first: the daily thresholds classify a shift, then the
weekly threshold only reclassifies the shift's remaining regular minutes
that push the pay week's regular total over the limit. Minutes already
counted as daily overtime never count again toward weekly overtime.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select
from sqlmodel import col

from app.config import get_settings
from app.exceptions import InvalidTimeSequenceError
from app.models.base import ensure_utc
from app.models.enums import TimeEntryStatus
from app.models.policy import OvertimePolicy
from app.models.time_entry import BreakEntry, TimeEntry
from app.services.calendar import week_start
from app.services.policy import pick_single_applicable

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from sqlalchemy import Select
    from sqlalchemy.ext.asyncio import AsyncSession

    from app.services.employee import EmployeeInfo

logger = logging.getLogger(__name__)

_COUNTED_STATUSES = (TimeEntryStatus.APPROVED.value, TimeEntryStatus.COMPLETED.value)


@dataclass(frozen=True)
class DaySegment:
    """Hours attributed to one calendar day when a shift is split at midnight."""

    work_date: date
    total_minutes: int
    regular_minutes: int
    overtime_minutes: int
    double_time_minutes: int


@dataclass(frozen=True)
class HoursBreakdown:
    """Classified minutes for one time entry."""

    total_minutes: int
    regular_minutes: int
    overtime_minutes: int
    double_time_minutes: int
    unpaid_break_minutes: int = 0
    segments: tuple[DaySegment, ...] = ()

    @property
    def total_hours(self) -> float:
        return round(self.total_minutes / 60, 2)

    @property
    def regular_hours(self) -> float:
        return round(self.regular_minutes / 60, 2)

    @property
    def overtime_hours(self) -> float:
        return round(self.overtime_minutes / 60, 2)

    @property
    def double_time_hours(self) -> float:
        return round(self.double_time_minutes / 60, 2)

    def weighted_minutes(self, policy: OvertimePolicy) -> float:
        """Pay-equivalent minutes: overtime and double time scaled by their multipliers."""
        double_time_multiplier = policy.double_time_multiplier or policy.overtime_multiplier
        return (
            self.regular_minutes
            + self.overtime_minutes * policy.overtime_multiplier
            + self.double_time_minutes * double_time_multiplier
        )


@dataclass(frozen=True)
class WeeklyOvertimeSummary:
    employee_id: uuid.UUID
    week_start: date
    total_minutes: int
    regular_minutes: int
    overtime_minutes: int
    double_time_minutes: int
    weekly_threshold_minutes: int | None

    @property
    def exceeds_weekly_threshold(self) -> bool:
        if self.weekly_threshold_minutes is None:
            return False
        return self.regular_minutes + self.overtime_minutes + self.double_time_minutes > self.weekly_threshold_minutes


# ---------------------------------------------------------------------------
# Pure computation helpers (no DB)
# ---------------------------------------------------------------------------


def _overlap_seconds(start: datetime, end: datetime, window_start: datetime, window_end: datetime) -> int:
    lo = max(start, window_start)
    hi = min(end, window_end)
    return max(0, int((hi - lo).total_seconds()))


def _unpaid_break_seconds(breaks: Iterable[BreakEntry], window_start: datetime, window_end: datetime) -> int:
    seconds = 0
    for brk in breaks:
        if brk.paid:
            continue
        if brk.end_at is None:
            raise InvalidTimeSequenceError("compute_hours", f"break {brk.id} has not ended")
        seconds += _overlap_seconds(ensure_utc(brk.start_at), ensure_utc(brk.end_at), window_start, window_end)
    return seconds


def classify_daily(total_minutes: int, policy: OvertimePolicy | None) -> tuple[int, int, int]:
    """Split one day's minutes into (regular, overtime, double_time) by the daily thresholds."""
    if policy is None:
        return total_minutes, 0, 0
    regular = min(total_minutes, policy.daily_threshold_minutes)
    beyond_daily = total_minutes - regular
    double_time = 0
    if policy.double_time_threshold_minutes is not None:
        double_time = max(0, total_minutes - policy.double_time_threshold_minutes)
    return regular, beyond_daily - double_time, double_time


def _apply_weekly(
    regular: int, overtime: int, week_regular_so_far: int, policy: OvertimePolicy | None
) -> tuple[int, int]:
    """Move regular minutes beyond the weekly threshold into overtime."""
    if policy is None:
        return regular, overtime
    headroom = max(0, policy.weekly_threshold_minutes - week_regular_so_far)
    moved = max(0, regular - headroom)
    return regular - moved, overtime + moved


def _day_windows(start: datetime, end: datetime) -> list[tuple[date, datetime, datetime]]:
    windows: list[tuple[date, datetime, datetime]] = []
    cursor = start
    while cursor < end:
        next_midnight = datetime.combine(cursor.date() + timedelta(days=1), time.min, tzinfo=cursor.tzinfo)
        window_end = min(end, next_midnight)
        windows.append((cursor.date(), cursor, window_end))
        cursor = window_end
    return windows


def compute_hours(
    entry: TimeEntry,
    breaks: Sequence[BreakEntry],
    policy: OvertimePolicy | None,
    *,
    prior_week_regular_minutes: int = 0,
    split_at_midnight: bool = False,
    clock_out: datetime | None = None,
) -> HoursBreakdown:
    """Classify a finished entry's worked minutes.

    Worked time is clock-out minus clock-in minus unpaid breaks. Without
    ``split_at_midnight`` the whole shift belongs to the clock-in date; with
    it, each calendar day is classified against the daily thresholds on its
    own. ``prior_week_regular_minutes`` is the regular time already worked
    earlier in the same pay week.
    """
    end_value = clock_out or entry.clock_out
    if end_value is None:
        raise InvalidTimeSequenceError("compute_hours", "entry has no clock-out time")
    start = ensure_utc(entry.clock_in)
    end = ensure_utc(end_value)
    if end <= start:
        raise InvalidTimeSequenceError("compute_hours", "clock-out must be after clock-in")

    windows = _day_windows(start, end) if split_at_midnight else [(start.date(), start, end)]

    segments: list[DaySegment] = []
    week_regular = prior_week_regular_minutes
    unpaid_total = 0
    for work_date, window_start, window_end in windows:
        worked_seconds = int((window_end - window_start).total_seconds())
        unpaid_seconds = _unpaid_break_seconds(breaks, window_start, window_end)
        unpaid_total += unpaid_seconds
        minutes = max(0, worked_seconds - unpaid_seconds) // 60

        regular, overtime, double_time = classify_daily(minutes, policy)
        regular, overtime = _apply_weekly(regular, overtime, week_regular, policy)
        week_regular += regular
        segments.append(DaySegment(work_date, minutes, regular, overtime, double_time))

    return HoursBreakdown(
        total_minutes=sum(s.total_minutes for s in segments),
        regular_minutes=sum(s.regular_minutes for s in segments),
        overtime_minutes=sum(s.overtime_minutes for s in segments),
        double_time_minutes=sum(s.double_time_minutes for s in segments),
        unpaid_break_minutes=unpaid_total // 60,
        segments=tuple(segments) if split_at_midnight else (),
    )


def apply_breakdown(entry: TimeEntry, breakdown: HoursBreakdown, policy: OvertimePolicy | None) -> None:
    """Copy calculator output onto the entry row."""
    entry.total_minutes = breakdown.total_minutes
    entry.regular_minutes = breakdown.regular_minutes
    entry.overtime_minutes = breakdown.overtime_minutes
    entry.double_time_minutes = breakdown.double_time_minutes
    entry.overtime_policy_id = policy.id if policy is not None else None


# ---------------------------------------------------------------------------
# DB-backed helpers
# ---------------------------------------------------------------------------


def pay_week_of(moment: datetime) -> date:
    """First day of the pay week containing ``moment``."""
    return week_start(ensure_utc(moment).date(), get_settings().pay_week_start)


def _pay_week_bounds(moment: datetime) -> tuple[datetime, datetime]:
    first = pay_week_of(moment)
    start = datetime.combine(first, time.min, tzinfo=UTC)
    return start, start + timedelta(days=7)


def _superseded_entry_ids() -> Select[tuple[uuid.UUID | None]]:
    """Entries replaced by an approved correction no longer count toward the week."""
    return select(col(TimeEntry.corrects_entry_id)).where(
        col(TimeEntry.corrects_entry_id).is_not(None),
        col(TimeEntry.status) == TimeEntryStatus.APPROVED.value,
    )


async def weekly_regular_minutes_before(
    session: AsyncSession,
    employee_id: uuid.UUID,
    clock_in: datetime,
    *,
    exclude_entry_id: uuid.UUID | None = None,
) -> int:
    """Regular minutes from counted entries earlier in the same pay week.

    Used for the preliminary split of entries that do not count yet; counted
    entries are settled by ``reallocate_pay_week``.
    """
    start, _ = _pay_week_bounds(clock_in)
    filters = [
        col(TimeEntry.employee_id) == employee_id,
        col(TimeEntry.status).in_(_COUNTED_STATUSES),
        col(TimeEntry.clock_in) >= start,
        col(TimeEntry.clock_in) < ensure_utc(clock_in),
        col(TimeEntry.id).not_in(_superseded_entry_ids()),
    ]
    if exclude_entry_id is not None:
        filters.append(col(TimeEntry.id) != exclude_entry_id)

    result = await session.execute(
        select(func.coalesce(func.sum(col(TimeEntry.regular_minutes)), 0)).where(*filters)
    )
    return int(result.scalar_one())


async def reallocate_pay_week(
    session: AsyncSession,
    employee: EmployeeInfo,
    moment: datetime,
) -> list[TimeEntry]:
    """Reclassify every counted entry in the pay week containing ``moment``.

    Entries are walked in clock-in order so the weekly threshold always
    falls on the latest shifts of the week, whatever order they were
    approved or completed in. Returns the entries whose splits changed.
    """
    start, end = _pay_week_bounds(moment)
    result = await session.execute(
        select(TimeEntry)
        .where(
            col(TimeEntry.employee_id) == employee.id,
            col(TimeEntry.status).in_(_COUNTED_STATUSES),
            col(TimeEntry.clock_in) >= start,
            col(TimeEntry.clock_in) < end,
            col(TimeEntry.id).not_in(_superseded_entry_ids()),
        )
        .order_by(col(TimeEntry.clock_in), col(TimeEntry.id))
    )
    entries = list(result.scalars().all())
    if not entries:
        return []

    breaks_result = await session.execute(
        select(BreakEntry)
        .where(col(BreakEntry.time_entry_id).in_([e.id for e in entries]))
        .order_by(col(BreakEntry.start_at))
    )
    breaks_by_entry: dict[uuid.UUID, list[BreakEntry]] = {}
    for brk in breaks_result.scalars().all():
        breaks_by_entry.setdefault(brk.time_entry_id, []).append(brk)

    policies: dict[date, OvertimePolicy | None] = {}
    changed: list[TimeEntry] = []
    week_regular = 0
    for entry in entries:
        work_date = ensure_utc(entry.clock_in).date()
        if work_date not in policies:
            policies[work_date] = await resolve_overtime_policy(session, employee, work_date)
        policy = policies[work_date]
        breakdown = compute_hours(
            entry,
            breaks_by_entry.get(entry.id, []),
            policy,
            prior_week_regular_minutes=week_regular,
            split_at_midnight=entry.split_at_midnight,
        )
        week_regular += breakdown.regular_minutes
        if (entry.regular_minutes, entry.overtime_minutes, entry.double_time_minutes) != (
            breakdown.regular_minutes,
            breakdown.overtime_minutes,
            breakdown.double_time_minutes,
        ):
            changed.append(entry)
        apply_breakdown(entry, breakdown, policy)
        session.add(entry)

    if changed:
        await session.flush()
        logger.info(
            "Reallocated %d time entries for employee %s in pay week of %s",
            len(changed),
            employee.id,
            start.date(),
        )
    return changed


async def resolve_overtime_policy(
    session: AsyncSession,
    employee: EmployeeInfo,
    on_date: date,
) -> OvertimePolicy | None:
    """Return the one active overtime policy for the employee on ``on_date``."""
    result = await session.execute(
        select(OvertimePolicy).where(
            col(OvertimePolicy.is_active).is_(True),
            col(OvertimePolicy.effective_from) <= on_date,
            or_(col(OvertimePolicy.effective_to).is_(None), col(OvertimePolicy.effective_to) >= on_date),
        )
    )
    return pick_single_applicable(list(result.scalars().all()), employee, label="overtime")


async def detect_weekly_overtime(
    session: AsyncSession,
    employee: EmployeeInfo,
    week_of: date,
) -> WeeklyOvertimeSummary:
    """Summarize a pay week's counted entries for one employee."""
    start, end = _pay_week_bounds(datetime.combine(week_of, time.min, tzinfo=UTC))
    result = await session.execute(
        select(
            func.coalesce(func.sum(col(TimeEntry.total_minutes)), 0),
            func.coalesce(func.sum(col(TimeEntry.regular_minutes)), 0),
            func.coalesce(func.sum(col(TimeEntry.overtime_minutes)), 0),
            func.coalesce(func.sum(col(TimeEntry.double_time_minutes)), 0),
        ).where(
            col(TimeEntry.employee_id) == employee.id,
            col(TimeEntry.status).in_(_COUNTED_STATUSES),
            col(TimeEntry.clock_in) >= start,
            col(TimeEntry.clock_in) < end,
            col(TimeEntry.id).not_in(_superseded_entry_ids()),
        )
    )
    total, regular, overtime, double_time = (int(v) for v in result.one())
    policy = await resolve_overtime_policy(session, employee, start.date())
    summary = WeeklyOvertimeSummary(
        employee_id=employee.id,
        week_start=start.date(),
        total_minutes=total,
        regular_minutes=regular,
        overtime_minutes=overtime,
        double_time_minutes=double_time,
        weekly_threshold_minutes=policy.weekly_threshold_minutes if policy else None,
    )
    if summary.exceeds_weekly_threshold:
        logger.info("Employee %s exceeded the weekly threshold in week of %s", employee.id, summary.week_start)
    return summary
