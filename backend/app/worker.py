"""Worker process for the scheduled jobs.

Runs an asyncio loop that, once per interval, closes the previous year on
January 1st, accrues every balance that is due, and clocks out entries
left open past the configured threshold.
"""

from __future__ import annotations

import asyncio
import logging

from app.config import get_settings
from app.db import get_session_factory
from app.middleware import setup_logging
from app.services.clock import get_clock
from app.services.scheduler import run_daily_jobs
from app.services.time_workflow import auto_clock_out_stale_entries

logger = logging.getLogger(__name__)


async def run_once() -> None:
    """Run one pass of every scheduled job. Failures are logged, never raised."""
    session_factory = get_session_factory()
    today = get_clock().today()

    try:
        async with session_factory() as session:
            accruals, carryover = await run_daily_jobs(session, today)
        if carryover is not None:
            logger.info(
                "Year-end carryover for %d: carried=%d errors=%d", carryover.year, carryover.carried, carryover.errors
            )
        logger.info("Accruals for %s: accrued=%d errors=%d", today, accruals.accrued, accruals.errors)
    except Exception:
        logger.exception("Scheduled accrual jobs failed for %s", today)

    try:
        async with session_factory() as session:
            closed = await auto_clock_out_stale_entries(session)
        if closed:
            logger.info("Auto-clocked out %d entries", closed)
    except Exception:
        logger.exception("Auto clock-out sweep failed")


async def run_worker_loop() -> None:
    """Main worker loop."""
    interval = get_settings().accrual_interval_seconds
    logger.info("Accrual worker started (interval %ds)", interval)
    while True:
        await run_once()
        await asyncio.sleep(interval)


def main() -> None:
    """Entry point for the worker process."""
    setup_logging(get_settings().log_level)
    asyncio.run(run_worker_loop())


if __name__ == "__main__":
    main()
