from __future__ import annotations

from datetime import date, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from app.exceptions import ConflictError
from app.models.enums import AuditAction, AuditEntityType
from app.models.holiday import CompanyHoliday
from app.schemas.holiday import HolidayListResponse, HolidayResponse
from app.services.audit import model_to_audit_dict, write_audit_log

if TYPE_CHECKING:
    from collections.abc import Collection

    from sqlalchemy.ext.asyncio import AsyncSession

    from app.schemas.auth import AuthContext
    from app.schemas.holiday import CreateHolidayRequest

_ONE_DAY = timedelta(days=1)


# ---------------------------------------------------------------------------
# Pure calendar arithmetic
# ---------------------------------------------------------------------------


def is_working_day(day: date, holidays: Collection[date]) -> bool:
    """Monday to Friday and not a holiday."""
    return day.weekday() < 5 and day not in holidays


def iter_days(start: date, end: date) -> list[date]:
    days: list[date] = []
    current = start
    while current <= end:
        days.append(current)
        current += _ONE_DAY
    return days


def counted_days(
    start: date,
    end: date,
    holidays: Collection[date],
    *,
    exclude_non_working: bool = True,
) -> list[date]:
    """Days in ``[start, end]`` that count toward a leave request."""
    if not exclude_non_working:
        return iter_days(start, end)
    return [d for d in iter_days(start, end) if is_working_day(d, holidays)]


def week_start(day: date, first_weekday: int = 0) -> date:
    """Return the first day of the pay week containing ``day``."""
    return day - timedelta(days=(day.weekday() - first_weekday) % 7)


# ---------------------------------------------------------------------------
# Holiday store
# ---------------------------------------------------------------------------


async def fetch_holiday_dates(session: AsyncSession, start: date, end: date) -> set[date]:
    """Fetch holidays in the given date range."""
    result = await session.execute(
        select(col(CompanyHoliday.date)).where(
            col(CompanyHoliday.date) >= start,
            col(CompanyHoliday.date) <= end,
        )
    )
    return {row[0] for row in result.all()}


def _build_holiday_response(holiday: CompanyHoliday) -> HolidayResponse:
    return HolidayResponse(id=holiday.id, date=holiday.date, name=holiday.name)


async def create_holiday(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateHolidayRequest,
) -> HolidayResponse:
    """Create a holiday. Dates are unique."""
    holiday = CompanyHoliday(date=payload.date, name=payload.name)

    try:
        async with session.begin_nested():
            session.add(holiday)
    except IntegrityError:
        msg = f"Holiday already exists for {payload.date.isoformat()}"
        raise ConflictError(msg) from None

    await write_audit_log(
        session,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.HOLIDAY,
        entity_id=holiday.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(holiday),
    )
    await session.commit()
    return _build_holiday_response(holiday)


async def list_holidays(
    session: AsyncSession,
    *,
    year: int | None = None,
) -> HolidayListResponse:
    """List holidays, optionally restricted to one calendar year."""
    query = select(CompanyHoliday)
    count_query = select(func.count()).select_from(CompanyHoliday)
    if year is not None:
        window = (col(CompanyHoliday.date) >= date(year, 1, 1), col(CompanyHoliday.date) <= date(year, 12, 31))
        query = query.where(*window)
        count_query = count_query.where(*window)

    total = (await session.execute(count_query)).scalar_one()
    result = await session.execute(query.order_by(col(CompanyHoliday.date)))
    holidays = result.scalars().all()
    return HolidayListResponse(items=[_build_holiday_response(h) for h in holidays], total=total)
