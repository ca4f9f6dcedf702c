from __future__ import annotations

from datetime import date

from pydantic import BaseModel


class AccrualRunRequest(BaseModel):
    """Optional body for the manual accrual trigger; defaults to today."""

    as_of: date | None = None


class AccrualRunResponse(BaseModel):
    """Response from the accrual trigger endpoint."""

    as_of: date
    processed: int
    accrued: int
    skipped: int
    errors: int


class CarryoverRunResponse(BaseModel):
    """Response from the year-end carryover trigger endpoint."""

    year: int
    processed: int
    carried: int
    skipped: int
    errors: int
