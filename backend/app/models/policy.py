# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from app.models.base import TimestampMixin, UUIDBase


class LeavePolicy(UUIDBase, TimestampMixin, table=True):
    """Eligibility, accrual and usage rules for one leave type over a date window.

    Rule collections are stored as JSON and validated through the tagged
    rule schemas in ``app.schemas.policy`` on every read and write.
    """

    __tablename__ = "leave_policy"
    __table_args__ = (
        sa.Index("ix_leave_policy_type_active", "leave_type_id", "is_active"),
        sa.CheckConstraint(
            "effective_to IS NULL OR effective_to >= effective_from", name="ck_leave_policy_window"
        ),
    )

    name: str = Field(max_length=255)
    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_type.id", ondelete="CASCADE"), nullable=False, index=True),
    )
    effective_from: date
    effective_to: date | None = None
    applicable_groups: list[str] = Field(default_factory=list, sa_type=sa.JSON)
    eligibility_rules: list[dict[str, Any]] = Field(default_factory=list, sa_type=sa.JSON)
    usage_rules: list[dict[str, Any]] = Field(default_factory=list, sa_type=sa.JSON)
    accrual_rule: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
    is_active: bool = Field(default=True)
    created_by: uuid.UUID | None = None


class OvertimePolicy(UUIDBase, TimestampMixin, table=True):
    """Daily/weekly overtime thresholds and pay multipliers."""

    __tablename__ = "overtime_policy"
    __table_args__ = (
        sa.CheckConstraint("daily_threshold_minutes > 0", name="ck_overtime_daily_positive"),
        sa.CheckConstraint("weekly_threshold_minutes > 0", name="ck_overtime_weekly_positive"),
        sa.CheckConstraint(
            "double_time_threshold_minutes IS NULL OR double_time_threshold_minutes > daily_threshold_minutes",
            name="ck_overtime_double_time_threshold",
        ),
        sa.CheckConstraint(
            "effective_to IS NULL OR effective_to >= effective_from", name="ck_overtime_policy_window"
        ),
    )

    name: str = Field(max_length=255)
    daily_threshold_minutes: int = Field(default=480)
    weekly_threshold_minutes: int = Field(default=2400)
    overtime_multiplier: float = Field(default=1.5)
    double_time_threshold_minutes: int | None = None
    double_time_multiplier: float | None = None
    applicable_groups: list[str] = Field(default_factory=list, sa_type=sa.JSON)
    effective_from: date
    effective_to: date | None = None
    is_active: bool = Field(default=True)
