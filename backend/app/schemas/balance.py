# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

from app.models.enums import AccrualPeriod, TransactionType

# ---------------------------------------------------------------------------
# Balance schemas
# ---------------------------------------------------------------------------


class OpenBalanceRequest(BaseModel):
    """Request body for opening a balance for an employee and leave type."""

    leave_type_id: uuid.UUID
    effective_date: date | None = None


class BalanceResponse(BaseModel):
    """Materialized balance with derived day values."""

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    policy_id: uuid.UUID | None
    current_minutes: int
    current_days: float
    accrual_rate_minutes: int
    accrual_period: AccrualPeriod
    max_balance_minutes: int | None
    carryover_limit_minutes: int | None
    last_accrual_date: date | None
    next_accrual_date: date | None
    ytd_used_minutes: int
    ytd_accrued_minutes: int
    effective_date: date
    version: int
    updated_at: datetime


class BalanceListResponse(BaseModel):
    items: list[BalanceResponse]
    total: int


class ReconciliationResponse(BaseModel):
    balance_id: uuid.UUID
    current_minutes: int
    ledger_sum_minutes: int
    drift_minutes: int
    consistent: bool


class ProjectionResponse(BaseModel):
    balance_id: uuid.UUID
    as_of: date
    projected_minutes: int


# ---------------------------------------------------------------------------
# Ledger schemas
# ---------------------------------------------------------------------------


class TransactionResponse(BaseModel):
    id: uuid.UUID
    balance_id: uuid.UUID
    transaction_type: TransactionType
    amount_minutes: int
    balance_after_minutes: int
    transaction_date: date
    related_request_id: uuid.UUID | None
    actor_id: uuid.UUID
    reason: str | None
    metadata_json: dict[str, Any] | None
    created_at: datetime


class TransactionListResponse(BaseModel):
    """Paginated ledger entries, newest first."""

    items: list[TransactionResponse]
    total: int


class CreateAdjustmentRequest(BaseModel):
    """Request body for an admin balance adjustment."""

    amount_minutes: int = Field(
        description="Signed integer: positive to add, negative to deduct",
    )
    reason: str = Field(min_length=1, max_length=1000)
    corrective: bool = Field(
        default=False,
        description="Clamp deductions at zero instead of rejecting them",
    )
