from __future__ import annotations

import datetime

import sqlalchemy as sa
from sqlmodel import Field

from app.models.base import UUIDBase


class CompanyHoliday(UUIDBase, table=True):
    """A holiday that is excluded from leave day counts."""

    __tablename__ = "company_holiday"
    __table_args__ = (sa.UniqueConstraint("date", name="uq_holiday_date"),)

    date: datetime.date
    name: str = Field(max_length=255)
