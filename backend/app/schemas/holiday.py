# ruff: noqa: TC003
from __future__ import annotations

import datetime
import uuid

from pydantic import BaseModel, Field


class CreateHolidayRequest(BaseModel):
    date: datetime.date
    name: str = Field(min_length=1, max_length=255)


class HolidayResponse(BaseModel):
    id: uuid.UUID
    date: datetime.date
    name: str


class HolidayListResponse(BaseModel):
    items: list[HolidayResponse]
    total: int
