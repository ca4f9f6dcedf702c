# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Self

from pydantic import BaseModel, Field, model_validator

from app.models.enums import BreakType, TimeEntryStatus

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class ClockInPayload(BaseModel):
    employee_id: uuid.UUID
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    location_accuracy: float | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=1000)


class ClockOutPayload(BaseModel):
    notes: str | None = Field(default=None, max_length=1000)
    split_at_midnight: bool = False


class StartBreakPayload(BaseModel):
    break_type: BreakType
    paid: bool = False


class BreakInput(BaseModel):
    break_type: BreakType
    start_at: datetime
    end_at: datetime
    paid: bool = False

    @model_validator(mode="after")
    def _validate_sequence(self) -> Self:
        if self.end_at <= self.start_at:
            msg = "end_at must be after start_at"
            raise ValueError(msg)
        return self


class ManualEntryPayload(BaseModel):
    """Request body for a manually entered shift (created as DRAFT)."""

    employee_id: uuid.UUID
    clock_in: datetime
    clock_out: datetime
    breaks: list[BreakInput] = []
    notes: str = Field(min_length=1, max_length=1000)
    split_at_midnight: bool = False


class CorrectionPayload(BaseModel):
    """Replacement times for an approved or completed entry."""

    clock_in: datetime
    clock_out: datetime
    breaks: list[BreakInput] = []
    notes: str = Field(min_length=1, max_length=1000)
    split_at_midnight: bool = False


class TimeDecisionPayload(BaseModel):
    note: str | None = Field(default=None, max_length=1000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BreakResponse(BaseModel):
    id: uuid.UUID
    time_entry_id: uuid.UUID
    break_type: BreakType
    start_at: datetime
    end_at: datetime | None
    paid: bool
    duration_minutes: int | None


class TimeEntryResponse(BaseModel):
    id: uuid.UUID
    employee_id: uuid.UUID
    clock_in: datetime
    clock_out: datetime | None
    latitude: float | None
    longitude: float | None
    location_accuracy: float | None
    status: TimeEntryStatus
    manual_entry: bool
    split_at_midnight: bool
    total_minutes: int | None
    regular_minutes: int | None
    overtime_minutes: int | None
    double_time_minutes: int | None
    overtime_policy_id: uuid.UUID | None
    approved_by: uuid.UUID | None
    approved_at: datetime | None
    corrects_entry_id: uuid.UUID | None
    notes: str | None
    breaks: list[BreakResponse]
    created_at: datetime


class TimeEntryListResponse(BaseModel):
    items: list[TimeEntryResponse]
    total: int


class WeeklyOvertimeResponse(BaseModel):
    """Counted hours for one employee's pay week."""

    employee_id: uuid.UUID
    week_start: date
    total_minutes: int
    regular_minutes: int
    overtime_minutes: int
    double_time_minutes: int
    weekly_threshold_minutes: int | None
    exceeds_weekly_threshold: bool


class AutoClockOutResponse(BaseModel):
    closed: int
