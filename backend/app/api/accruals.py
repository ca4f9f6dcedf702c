# ruff: noqa: B008, TC001, TC003
"""API endpoints for triggering the accrual and carryover jobs."""

from __future__ import annotations

from fastapi import APIRouter, Query

from app.api.deps import AdminDep
from app.db import SessionDep
from app.schemas.accrual import AccrualRunRequest, AccrualRunResponse, CarryoverRunResponse
from app.services.clock import get_clock
from app.services.scheduler import run_scheduled_accruals, run_year_end_carryover

accruals_router = APIRouter(prefix="/accruals", tags=["accruals"])


@accruals_router.post("/run", response_model=AccrualRunResponse)
async def run_accruals(
    session: SessionDep,
    _auth: AdminDep,
    payload: AccrualRunRequest | None = None,
) -> AccrualRunResponse:
    """Run scheduled accruals as of a date (admin only).

    Useful for backfills. Re-running for the same date posts nothing new.
    """
    as_of = payload.as_of if payload is not None and payload.as_of is not None else get_clock().today()
    result = await run_scheduled_accruals(session, as_of)
    return AccrualRunResponse(
        as_of=result.as_of,
        processed=result.processed,
        accrued=result.accrued,
        skipped=result.skipped,
        errors=result.errors,
    )


@accruals_router.post("/carryover", response_model=CarryoverRunResponse)
async def run_carryover(
    session: SessionDep,
    _auth: AdminDep,
    year: int | None = Query(default=None, ge=1900, le=9999),
) -> CarryoverRunResponse:
    """Close a year by applying carryover limits (admin only). Defaults to last year."""
    target_year = year if year is not None else get_clock().today().year - 1
    result = await run_year_end_carryover(session, target_year)
    return CarryoverRunResponse(
        year=result.year,
        processed=result.processed,
        carried=result.carried,
        skipped=result.skipped,
        errors=result.errors,
    )
