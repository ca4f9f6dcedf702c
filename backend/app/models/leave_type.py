from __future__ import annotations

import sqlalchemy as sa
from sqlmodel import Field

from app.models.base import TimestampMixin, UUIDBase


class LeaveType(UUIDBase, TimestampMixin, table=True):
    """Reference data describing a kind of leave (vacation, sick, unpaid...)."""

    __tablename__ = "leave_type"
    __table_args__ = (
        sa.UniqueConstraint("code", name="uq_leave_type_code"),
        sa.CheckConstraint(
            "max_consecutive_days IS NULL OR max_consecutive_days > 0", name="ck_leave_type_max_consecutive"
        ),
        sa.CheckConstraint("advance_notice_days >= 0", name="ck_leave_type_advance_notice"),
    )

    code: str = Field(max_length=50)
    name: str = Field(max_length=255)
    paid: bool = Field(default=True)
    requires_approval: bool = Field(default=True)
    max_consecutive_days: int | None = None
    advance_notice_days: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    allows_partial_days: bool = Field(default=False)
    accrual_based: bool = Field(default=True)
    excludes_non_working_days: bool = Field(default=True)
    is_active: bool = Field(default=True)
