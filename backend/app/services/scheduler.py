"""Batch jobs: periodic accrual and year-end carryover.

Each balance is processed and committed on its own, so one bad balance
never blocks the rest of the run. Both jobs are idempotent through the
ledger's idempotency keys and are safe to re-run for the same date.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from app.models.balance import LeaveBalance
from app.services import ledger
from app.services.employee import get_employee_service

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


@dataclass
class AccrualRunResult:
    """Summary of one scheduled accrual run."""

    as_of: date
    processed: int = 0
    accrued: int = 0
    skipped: int = 0
    errors: int = 0


@dataclass
class CarryoverRunResult:
    """Summary of one year-end carryover run."""

    year: int
    processed: int = 0
    carried: int = 0
    skipped: int = 0
    errors: int = 0


async def _balance_ids(session: AsyncSession, *, accruing_only: bool, effective_by: date) -> list[uuid.UUID]:
    filters = [col(LeaveBalance.effective_date) <= effective_by]
    if accruing_only:
        filters.append(col(LeaveBalance.accrual_rate_minutes) > 0)
    result = await session.execute(select(LeaveBalance.id).where(*filters).order_by(col(LeaveBalance.id)))
    return list(result.scalars().all())


async def run_scheduled_accruals(session: AsyncSession, as_of: date) -> AccrualRunResult:
    """Accrue every balance whose next accrual date has arrived.

    Balances not yet due (or still inside their waiting period) are counted
    as skipped. Re-running for the same ``as_of`` posts nothing new.
    """
    result = AccrualRunResult(as_of=as_of)
    employee_service = get_employee_service()

    for balance_id in await _balance_ids(session, accruing_only=True, effective_by=as_of):
        result.processed += 1
        try:
            balance = await ledger.get_balance_model(session, balance_id)
            employee = await employee_service.get_employee(balance.employee_id)
            due = ledger.next_accrual_date(balance, employee.start_date if employee else None)
            if due is None or due > as_of:
                result.skipped += 1
                continue

            entry = await ledger.accrue(session, balance_id, as_of)
            await session.commit()
            if entry is None:
                result.skipped += 1
            else:
                result.accrued += 1
        except Exception:
            await session.rollback()
            logger.exception("Error accruing balance %s for %s", balance_id, as_of)
            result.errors += 1

    logger.info(
        "Accrual run for %s: processed=%d accrued=%d skipped=%d errors=%d",
        as_of,
        result.processed,
        result.accrued,
        result.skipped,
        result.errors,
    )
    return result


async def run_year_end_carryover(session: AsyncSession, year: int) -> CarryoverRunResult:
    """Apply carryover limits to every balance that existed during ``year``."""
    result = CarryoverRunResult(year=year)

    for balance_id in await _balance_ids(session, accruing_only=False, effective_by=date(year, 12, 31)):
        result.processed += 1
        try:
            if await ledger.find_transaction_by_key(session, f"carryover:{balance_id}:{year}") is not None:
                result.skipped += 1
                continue
            await ledger.carryover_year_end(session, balance_id, year)
            await session.commit()
            result.carried += 1
        except Exception:
            await session.rollback()
            logger.exception("Error applying %d carryover to balance %s", year, balance_id)
            result.errors += 1

    logger.info(
        "Carryover run for %d: processed=%d carried=%d skipped=%d errors=%d",
        year,
        result.processed,
        result.carried,
        result.skipped,
        result.errors,
    )
    return result


async def run_daily_jobs(session: AsyncSession, today: date) -> tuple[AccrualRunResult, CarryoverRunResult | None]:
    """Accrue for ``today``; on January 1st, close the previous year first."""
    carryover: CarryoverRunResult | None = None
    if today.month == 1 and today.day == 1:
        carryover = await run_year_end_carryover(session, today.year - 1)
    accruals = await run_scheduled_accruals(session, today)
    return accruals, carryover
