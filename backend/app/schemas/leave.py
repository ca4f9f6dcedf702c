# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, Self

from pydantic import BaseModel, Field, model_validator

from app.models.enums import LeaveRequestStatus, ViolationCode

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class LeaveRequestPayload(BaseModel):
    """Request body for submitting (or pre-checking) a leave request."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    is_partial_day: bool = False
    partial_minutes: int | None = Field(default=None, gt=0)
    reason: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _validate_dates(self) -> Self:
        if self.end_date < self.start_date:
            msg = "end_date must be >= start_date"
            raise ValueError(msg)
        if self.is_partial_day:
            if self.partial_minutes is None:
                msg = "partial_minutes is required for partial-day requests"
                raise ValueError(msg)
            if self.end_date != self.start_date:
                msg = "partial-day requests must cover a single date"
                raise ValueError(msg)
        elif self.partial_minutes is not None:
            msg = "partial_minutes is only allowed on partial-day requests"
            raise ValueError(msg)
        return self


class DecisionPayload(BaseModel):
    """Request body for approve/deny/cancel actions."""

    note: str | None = Field(default=None, max_length=1000)


class ReversalPayload(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class RuleViolationResponse(BaseModel):
    code: ViolationCode
    message: str
    details: dict[str, Any] = {}


class EligibilityResponse(BaseModel):
    """Outcome of evaluating a candidate request against its policy."""

    eligible: bool
    violations: list[RuleViolationResponse]
    requested_minutes: int
    requested_days: float
    policy_id: uuid.UUID | None


class LeaveRequestResponse(BaseModel):
    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    policy_id: uuid.UUID | None
    start_date: date
    end_date: date
    is_partial_day: bool
    partial_minutes: int | None
    requested_minutes: int
    requested_days: float
    reason: str | None
    status: LeaveRequestStatus
    submitted_at: datetime
    reviewed_by: uuid.UUID | None
    reviewed_at: datetime | None
    review_note: str | None
    created_at: datetime


class LeaveRequestListResponse(BaseModel):
    """Paginated list of leave requests."""

    items: list[LeaveRequestResponse]
    total: int


class StatusHistoryResponse(BaseModel):
    id: uuid.UUID
    entity_type: str
    entity_id: uuid.UUID
    from_status: str | None
    to_status: str
    actor_id: uuid.UUID
    note: str | None
    created_at: datetime


class StatusHistoryListResponse(BaseModel):
    items: list[StatusHistoryResponse]
    total: int
