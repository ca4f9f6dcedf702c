# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Field

from app.models.base import TimestampMixin, UUIDBase, ensure_utc
from app.models.enums import TimeEntryStatus


class TimeEntry(UUIDBase, TimestampMixin, table=True):
    """A worked shift, either clock-based or entered manually.

    Hour splits are filled in by the overtime calculator on clock-out or
    approval. Corrections are new rows pointing at the entry they correct.
    """

    __tablename__ = "time_entry"
    __table_args__ = (
        sa.Index("ix_time_entry_employee_clock_in", "employee_id", "clock_in"),
        # At most one open shift per employee.
        sa.Index(
            "uq_time_entry_active_employee",
            "employee_id",
            unique=True,
            postgresql_where=sa.text("status = 'ACTIVE'"),
            sqlite_where=sa.text("status = 'ACTIVE'"),
        ),
        sa.CheckConstraint("clock_out IS NULL OR clock_out > clock_in", name="ck_time_entry_sequence"),
        sa.CheckConstraint("total_minutes IS NULL OR total_minutes >= 0", name="ck_time_entry_total"),
    )

    employee_id: uuid.UUID = Field(index=True)
    clock_in: datetime = Field(sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    clock_out: datetime | None = Field(
        default=None,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
    )
    latitude: float | None = None
    longitude: float | None = None
    location_accuracy: float | None = None
    status: str = Field(
        default=TimeEntryStatus.ACTIVE, max_length=50, index=True, sa_column_kwargs={"server_default": "ACTIVE"}
    )
    manual_entry: bool = Field(default=False)
    # Classify each calendar day of an overnight shift against the daily thresholds.
    split_at_midnight: bool = Field(default=False)
    total_minutes: int | None = None
    regular_minutes: int | None = None
    overtime_minutes: int | None = None
    double_time_minutes: int | None = None
    overtime_policy_id: uuid.UUID | None = Field(
        default=None,
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("overtime_policy.id", ondelete="SET NULL"), nullable=True),
    )
    approved_by: uuid.UUID | None = None
    approved_at: datetime | None = Field(
        default=None,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
    )
    corrects_entry_id: uuid.UUID | None = Field(
        default=None,
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("time_entry.id", ondelete="SET NULL"), nullable=True, index=True),
    )
    notes: str | None = None


class BreakEntry(UUIDBase, table=True):
    """A break taken during a time entry. Duration is derived from start/end."""

    __tablename__ = "break_entry"
    __table_args__ = (
        sa.CheckConstraint("end_at IS NULL OR end_at > start_at", name="ck_break_entry_sequence"),
    )

    time_entry_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("time_entry.id", ondelete="CASCADE"), nullable=False, index=True),
    )
    break_type: str = Field(max_length=50)
    start_at: datetime = Field(sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    end_at: datetime | None = Field(
        default=None,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
    )
    paid: bool = Field(default=False)

    @property
    def duration_minutes(self) -> int | None:
        if self.end_at is None:
            return None
        return int((ensure_utc(self.end_at) - ensure_utc(self.start_at)).total_seconds() // 60)
