"""Tests for the batch jobs: scheduled accruals, year-end carryover and the
worker pass that runs them together with the auto clock-out sweep.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import col

from app import worker
from app.models.enums import TimeEntryStatus, TransactionType
from app.models.ledger import AccrualTransaction
from app.models.time_entry import TimeEntry
from app.schemas.balance import OpenBalanceRequest
from app.services import ledger, scheduler
from tests.conftest import EMPLOYEE_ID, NEW_HIRE_ID, NOW

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

    from app.schemas.auth import AuthContext
    from app.schemas.balance import BalanceResponse


async def _new_hire_balance(session: AsyncSession, admin: AuthContext, leave_type_id: Any) -> BalanceResponse:
    return await ledger.open_balance(
        session,
        admin,
        NEW_HIRE_ID,
        OpenBalanceRequest(leave_type_id=leave_type_id, effective_date=date(2026, 3, 1)),
    )


# ---------------------------------------------------------------------------
# Scheduled accruals
# ---------------------------------------------------------------------------


async def test_accrual_run_credits_due_balances_only(
    db_session: AsyncSession, admin: AuthContext, funded_balance: BalanceResponse
) -> None:
    await _new_hire_balance(db_session, admin, funded_balance.leave_type_id)

    result = await scheduler.run_scheduled_accruals(db_session, date(2026, 3, 1))

    assert (result.processed, result.accrued, result.skipped, result.errors) == (2, 1, 1, 0)
    balance = await ledger.get_balance(db_session, funded_balance.id)
    assert balance.current_minutes == 4800 + 960


async def test_accrual_run_is_idempotent(db_session: AsyncSession, funded_balance: BalanceResponse) -> None:
    first = await scheduler.run_scheduled_accruals(db_session, date(2026, 2, 1))
    second = await scheduler.run_scheduled_accruals(db_session, date(2026, 2, 1))

    assert first.accrued == 1
    assert second.accrued == 0
    assert second.skipped == 1
    balance = await ledger.get_balance(db_session, funded_balance.id)
    assert balance.current_minutes == 4800 + 480


async def test_accrual_run_ignores_balances_not_yet_effective(
    db_session: AsyncSession, admin: AuthContext, funded_balance: BalanceResponse
) -> None:
    await _new_hire_balance(db_session, admin, funded_balance.leave_type_id)
    result = await scheduler.run_scheduled_accruals(db_session, date(2026, 2, 1))
    assert result.processed == 1


async def test_accrual_run_isolates_failures(
    db_session: AsyncSession,
    admin: AuthContext,
    funded_balance: BalanceResponse,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    other = await _new_hire_balance(db_session, admin, funded_balance.leave_type_id)
    real_accrue = ledger.accrue

    async def _flaky_accrue(session: AsyncSession, balance_id: Any, as_of: date, **kwargs: Any) -> Any:
        if balance_id == funded_balance.id:
            msg = "simulated failure"
            raise RuntimeError(msg)
        return await real_accrue(session, balance_id, as_of, **kwargs)

    monkeypatch.setattr(ledger, "accrue", _flaky_accrue)

    result = await scheduler.run_scheduled_accruals(db_session, date(2026, 4, 1))

    assert result.errors == 1
    assert result.accrued == 1
    assert "Error accruing balance" in caplog.text
    other_balance = await ledger.get_balance(db_session, other.id)
    assert other_balance.current_minutes == 480


# ---------------------------------------------------------------------------
# Year-end carryover
# ---------------------------------------------------------------------------


async def test_carryover_run_is_idempotent(db_session: AsyncSession, funded_balance: BalanceResponse) -> None:
    first = await scheduler.run_year_end_carryover(db_session, 2026)
    second = await scheduler.run_year_end_carryover(db_session, 2026)

    assert (first.processed, first.carried) == (1, 1)
    assert (second.carried, second.skipped) == (0, 1)
    balance = await ledger.get_balance(db_session, funded_balance.id)
    assert balance.current_minutes == 2400


async def test_daily_jobs_close_the_year_on_january_first(
    db_session: AsyncSession, funded_balance: BalanceResponse
) -> None:
    accruals, carryover = await scheduler.run_daily_jobs(db_session, date(2027, 1, 1))

    assert carryover is not None
    assert carryover.year == 2026
    assert carryover.carried == 1
    assert accruals.accrued == 1

    result = await db_session.execute(
        select(AccrualTransaction)
        .where(col(AccrualTransaction.balance_id) == funded_balance.id)
        .order_by(col(AccrualTransaction.created_at))
    )
    kinds = [e.transaction_type for e in result.scalars().all()]
    assert kinds == [TransactionType.ADJUSTMENT, TransactionType.CARRYOVER, TransactionType.ACCRUAL]

    balance = await ledger.get_balance(db_session, funded_balance.id)
    assert balance.current_minutes == 2400 + 12 * 480


async def test_daily_jobs_skip_carryover_on_other_days(
    db_session: AsyncSession, funded_balance: BalanceResponse
) -> None:
    _, carryover = await scheduler.run_daily_jobs(db_session, date(2026, 3, 1))
    assert carryover is None


# ---------------------------------------------------------------------------
# Worker pass
# ---------------------------------------------------------------------------


async def test_worker_run_once_runs_every_job(
    engine: AsyncEngine,
    db_session: AsyncSession,
    funded_balance: BalanceResponse,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    db_session.add(
        TimeEntry(
            employee_id=EMPLOYEE_ID,
            clock_in=NOW - timedelta(hours=20),
            status=TimeEntryStatus.ACTIVE.value,
        )
    )
    await db_session.commit()

    monkeypatch.setattr(worker, "get_session_factory", lambda: async_sessionmaker(engine, expire_on_commit=False))
    await worker.run_once()

    db_session.expire_all()
    entries = (await db_session.execute(select(TimeEntry))).scalars().all()
    assert [e.status for e in entries] == [TimeEntryStatus.COMPLETED]

    balance = await ledger.get_balance(db_session, funded_balance.id)
    assert balance.last_accrual_date == NOW.date()
    assert balance.current_minutes > 4800
