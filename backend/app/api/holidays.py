# ruff: noqa: B008, TC001
from __future__ import annotations

from fastapi import APIRouter, Query, status

from app.api.deps import AdminDep, AuthDep
from app.db import SessionDep
from app.schemas.holiday import CreateHolidayRequest, HolidayListResponse, HolidayResponse
from app.services import calendar as calendar_service

holidays_router = APIRouter(prefix="/holidays", tags=["holidays"])


@holidays_router.post("", response_model=HolidayResponse, status_code=status.HTTP_201_CREATED)
async def create_holiday(
    payload: CreateHolidayRequest,
    session: SessionDep,
    auth: AdminDep,
) -> HolidayResponse:
    """Add a company holiday (admin only)."""
    return await calendar_service.create_holiday(session, auth, payload)


@holidays_router.get("", response_model=HolidayListResponse)
async def list_holidays(
    session: SessionDep,
    _auth: AuthDep,
    year: int | None = Query(default=None, ge=1900, le=9999),
) -> HolidayListResponse:
    return await calendar_service.list_holidays(session, year=year)
