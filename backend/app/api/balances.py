# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Query, status

from app.api.deps import AdminDep, AuthDep, ensure_can_act_for
from app.db import SessionDep
from app.schemas.balance import (
    BalanceListResponse,
    BalanceResponse,
    CreateAdjustmentRequest,
    OpenBalanceRequest,
    ProjectionResponse,
    ReconciliationResponse,
    TransactionListResponse,
    TransactionResponse,
)
from app.services import ledger

# ---------------------------------------------------------------------------
# Employee-scoped: /employees/{employee_id}/balances
# ---------------------------------------------------------------------------

employee_balance_router = APIRouter(
    prefix="/employees/{employee_id}/balances",
    tags=["balances"],
)


@employee_balance_router.get("", response_model=BalanceListResponse)
async def list_employee_balances(
    employee_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> BalanceListResponse:
    """All balances for an employee."""
    ensure_can_act_for(auth, employee_id)
    return await ledger.list_employee_balances(session, employee_id)


@employee_balance_router.post("", response_model=BalanceResponse, status_code=status.HTTP_201_CREATED)
async def open_balance(
    employee_id: uuid.UUID,
    payload: OpenBalanceRequest,
    session: SessionDep,
    auth: AdminDep,
) -> BalanceResponse:
    """Open a balance configured from the applicable policy (admin only)."""
    return await ledger.open_balance(session, auth, employee_id, payload)


# ---------------------------------------------------------------------------
# Balance-scoped: /balances/{balance_id}
# ---------------------------------------------------------------------------

balance_router = APIRouter(prefix="/balances/{balance_id}", tags=["balances"])


async def _authorize(session: SessionDep, auth: AuthDep, balance_id: uuid.UUID) -> None:
    balance = await ledger.get_balance_model(session, balance_id)
    ensure_can_act_for(auth, balance.employee_id)


@balance_router.get("", response_model=BalanceResponse)
async def get_balance(
    balance_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> BalanceResponse:
    await _authorize(session, auth, balance_id)
    return await ledger.get_balance(session, balance_id)


@balance_router.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    balance_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> TransactionListResponse:
    """Ledger entries for a balance, newest first."""
    await _authorize(session, auth, balance_id)
    return await ledger.list_transactions(session, balance_id, offset=offset, limit=limit)


@balance_router.get("/projection", response_model=ProjectionResponse)
async def get_projection(
    balance_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    as_of: date = Query(),
) -> ProjectionResponse:
    """Projected balance on a future date from accruals alone."""
    await _authorize(session, auth, balance_id)
    return await ledger.get_projection(session, balance_id, as_of)


@balance_router.post("/adjustments", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def create_adjustment(
    balance_id: uuid.UUID,
    payload: CreateAdjustmentRequest,
    session: SessionDep,
    auth: AdminDep,
) -> TransactionResponse:
    """Post a manual adjustment (admin only)."""
    return await ledger.create_adjustment(session, auth, balance_id, payload)


@balance_router.get("/reconcile", response_model=ReconciliationResponse)
async def reconcile_balance(
    balance_id: uuid.UUID,
    session: SessionDep,
    _auth: AdminDep,
) -> ReconciliationResponse:
    """Compare the balance with the sum of its ledger (admin only)."""
    return await ledger.reconcile_balance(session, balance_id)
