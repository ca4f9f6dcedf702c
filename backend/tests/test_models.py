from __future__ import annotations

import uuid
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.exc import IntegrityError

from app.models import (
    AccrualTransaction,
    AuditLog,
    BreakEntry,
    CompanyHoliday,
    LeaveBalance,
    LeaveRequest,
    LeaveType,
    SQLModel,
    TimeEntry,
)
from app.models.base import ensure_utc
from app.models.enums import AccrualPeriod, BreakType, LeaveRequestStatus, TimeEntryStatus

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

EXPECTED_TABLES = {
    "accrual_transaction",
    "audit_log",
    "break_entry",
    "company_holiday",
    "leave_balance",
    "leave_policy",
    "leave_request",
    "leave_type",
    "overtime_policy",
    "status_history",
    "time_entry",
}


def test_all_tables_registered() -> None:
    table_names = set(SQLModel.metadata.tables.keys())
    assert EXPECTED_TABLES.issubset(table_names)


def test_leave_type_defaults() -> None:
    leave_type = LeaveType(code="VAC", name="Vacation")
    assert leave_type.paid
    assert leave_type.requires_approval
    assert leave_type.accrual_based
    assert leave_type.advance_notice_days == 0
    assert leave_type.id is not None


def test_leave_balance_defaults() -> None:
    balance = LeaveBalance(employee_id=uuid.uuid4(), leave_type_id=uuid.uuid4(), effective_date=date(2026, 1, 1))
    assert balance.current_minutes == 0
    assert balance.accrual_period == AccrualPeriod.MONTHLY
    assert balance.last_accrual_date is None
    assert balance.version == 1


def test_leave_request_defaults() -> None:
    request = LeaveRequest(
        employee_id=uuid.uuid4(),
        leave_type_id=uuid.uuid4(),
        start_date=date(2026, 3, 10),
        end_date=date(2026, 3, 11),
        requested_minutes=960,
        requested_days=2.0,
        submitted_at=datetime(2026, 3, 2, tzinfo=UTC),
    )
    assert request.status == LeaveRequestStatus.PENDING
    assert request.reviewed_by is None
    assert not request.is_partial_day


def test_time_entry_defaults() -> None:
    entry = TimeEntry(employee_id=uuid.uuid4(), clock_in=datetime(2026, 3, 2, 9, tzinfo=UTC))
    assert entry.status == TimeEntryStatus.ACTIVE
    assert entry.clock_out is None
    assert not entry.manual_entry


def test_break_duration() -> None:
    start = datetime(2026, 3, 2, 12, tzinfo=UTC)
    open_break = BreakEntry(time_entry_id=uuid.uuid4(), break_type=BreakType.LUNCH, start_at=start)
    assert open_break.duration_minutes is None

    open_break.end_at = (start + timedelta(minutes=45)).replace(tzinfo=None)
    assert open_break.duration_minutes == 45


def test_ensure_utc() -> None:
    naive = datetime(2026, 3, 2, 9)
    assert ensure_utc(naive).tzinfo is UTC
    aware = datetime(2026, 3, 2, 9, tzinfo=UTC)
    assert ensure_utc(aware) == aware


def test_company_holiday_instantiation() -> None:
    holiday = CompanyHoliday(date=date(2026, 12, 25), name="Christmas Day")
    assert holiday.name == "Christmas Day"


def test_audit_log_instantiation() -> None:
    log = AuditLog(
        actor_id=uuid.uuid4(),
        entity_type="LEAVE_REQUEST",
        entity_id=uuid.uuid4(),
        action="CREATE",
    )
    assert log.before_json is None
    assert log.after_json is None


# ---------------------------------------------------------------------------
# Database constraints
# ---------------------------------------------------------------------------


async def _leave_type(session: AsyncSession) -> LeaveType:
    leave_type = LeaveType(code="VAC", name="Vacation")
    session.add(leave_type)
    await session.flush()
    return leave_type


async def test_negative_balance_rejected_by_database(db_session: AsyncSession) -> None:
    leave_type = await _leave_type(db_session)
    db_session.add(
        LeaveBalance(
            employee_id=uuid.uuid4(),
            leave_type_id=leave_type.id,
            effective_date=date(2026, 1, 1),
            current_minutes=-1,
        )
    )
    with pytest.raises(IntegrityError):
        await db_session.flush()


async def test_balance_above_max_rejected_by_database(db_session: AsyncSession) -> None:
    leave_type = await _leave_type(db_session)
    db_session.add(
        LeaveBalance(
            employee_id=uuid.uuid4(),
            leave_type_id=leave_type.id,
            effective_date=date(2026, 1, 1),
            current_minutes=500,
            max_balance_minutes=480,
        )
    )
    with pytest.raises(IntegrityError):
        await db_session.flush()


async def test_duplicate_idempotency_key_rejected(db_session: AsyncSession) -> None:
    leave_type = await _leave_type(db_session)
    balance = LeaveBalance(employee_id=uuid.uuid4(), leave_type_id=leave_type.id, effective_date=date(2026, 1, 1))
    db_session.add(balance)
    await db_session.flush()

    for _ in range(2):
        db_session.add(
            AccrualTransaction(
                balance_id=balance.id,
                transaction_type="ACCRUAL",
                amount_minutes=480,
                balance_after_minutes=480,
                transaction_date=date(2026, 2, 1),
                actor_id=uuid.UUID(int=0),
                idempotency_key=f"accrual:{balance.id}:2026-02-01",
            )
        )
    with pytest.raises(IntegrityError):
        await db_session.flush()


async def test_second_active_entry_rejected_by_database(db_session: AsyncSession) -> None:
    employee_id = uuid.uuid4()
    clock_in = datetime(2026, 3, 2, 9, tzinfo=UTC)
    db_session.add(TimeEntry(employee_id=employee_id, clock_in=clock_in))
    await db_session.flush()
    db_session.add(TimeEntry(employee_id=employee_id, clock_in=clock_in + timedelta(hours=1)))
    with pytest.raises(IntegrityError):
        await db_session.flush()


async def test_clock_out_before_clock_in_rejected_by_database(db_session: AsyncSession) -> None:
    clock_in = datetime(2026, 3, 2, 9, tzinfo=UTC)
    db_session.add(
        TimeEntry(
            employee_id=uuid.uuid4(),
            clock_in=clock_in,
            clock_out=clock_in - timedelta(minutes=5),
            status=TimeEntryStatus.COMPLETED.value,
        )
    )
    with pytest.raises(IntegrityError):
        await db_session.flush()
