# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime

import sqlalchemy as sa
from sqlmodel import Field

from app.models.base import UUIDBase, now_utc
from app.models.enums import AccrualPeriod


class LeaveBalance(UUIDBase, table=True):
    """Materialized balance per employee and leave type.

    Mutated only by the ledger service, which appends an AccrualTransaction
    in the same transaction as every change to ``current_minutes``.
    """

    __tablename__ = "leave_balance"
    __table_args__ = (
        sa.UniqueConstraint("employee_id", "leave_type_id", name="uq_balance_employee_leave_type"),
        sa.CheckConstraint("current_minutes >= 0", name="ck_balance_non_negative"),
        sa.CheckConstraint(
            "max_balance_minutes IS NULL OR current_minutes <= max_balance_minutes", name="ck_balance_within_max"
        ),
        sa.CheckConstraint(
            "carryover_limit_minutes IS NULL OR carryover_limit_minutes >= 0", name="ck_balance_carryover_limit"
        ),
    )

    employee_id: uuid.UUID = Field(index=True)
    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_type.id", ondelete="CASCADE"), nullable=False, index=True),
    )
    policy_id: uuid.UUID | None = Field(
        default=None,
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_policy.id", ondelete="SET NULL"), nullable=True),
    )
    current_minutes: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    accrual_rate_minutes: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    accrual_period: str = Field(default=AccrualPeriod.MONTHLY, max_length=50)
    max_balance_minutes: int | None = None
    carryover_limit_minutes: int | None = None
    waiting_period_days: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    last_accrual_date: date | None = None
    ytd_used_minutes: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    ytd_accrued_minutes: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    effective_date: date
    version: int = Field(default=1, sa_column_kwargs={"server_default": "1"})
    updated_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=now_utc,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.func.now(), "onupdate": sa.func.now()},
    )
