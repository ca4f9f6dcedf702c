"""Balance ledger: the only code path that changes a LeaveBalance.

Every mutation locks the balance row (SELECT ... FOR UPDATE), appends an
AccrualTransaction and updates the materialized balance in the same
transaction, so ``current_minutes`` always equals the sum of its ledger.
Functions below the public API section never commit; the caller owns the
transaction boundary.
"""

from __future__ import annotations

import logging
import uuid
from calendar import monthrange
from dataclasses import dataclass
from datetime import date, timedelta
from typing import TYPE_CHECKING, Any, assert_never

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from app.config import get_settings
from app.db import with_storage_retry
from app.exceptions import ConflictError, InsufficientBalanceError, NotFoundError, ValidationError
from app.models.balance import LeaveBalance
from app.models.enums import AccrualPeriod, AuditAction, AuditEntityType, TransactionType
from app.models.ledger import AccrualTransaction
from app.schemas.balance import (
    BalanceListResponse,
    BalanceResponse,
    ProjectionResponse,
    ReconciliationResponse,
    TransactionListResponse,
    TransactionResponse,
)
from app.services.audit import model_to_audit_dict, write_audit_log
from app.services.clock import get_clock
from app.services.employee import get_employee_service, require_employee
from app.services.policy import get_leave_type, resolve_leave_policy
from app.services.rules import parse_policy_rules

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from app.schemas.auth import AuthContext
    from app.schemas.balance import CreateAdjustmentRequest, OpenBalanceRequest

logger = logging.getLogger(__name__)

SYSTEM_ACTOR_ID = uuid.UUID(int=0)


@dataclass(frozen=True)
class LedgerContext:
    """Who is changing a balance, why, and on whose behalf."""

    actor_id: uuid.UUID
    reason: str | None = None
    related_request_id: uuid.UUID | None = None
    transaction_date: date | None = None
    corrective: bool = False
    idempotency_key: str | None = None
    metadata: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Pure accrual arithmetic (no DB)
# ---------------------------------------------------------------------------


def _add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, min(day.day, monthrange(year, month)[1]))


def add_period(day: date, period: AccrualPeriod) -> date:
    """Advance ``day`` by one accrual period."""
    match period:
        case AccrualPeriod.MONTHLY:
            return _add_months(day, 1)
        case AccrualPeriod.ANNUAL:
            return _add_months(day, 12)
        case AccrualPeriod.BIWEEKLY | AccrualPeriod.PER_PAY_PERIOD:
            return day + timedelta(days=14)
        case _:
            assert_never(period)


def accrual_anchor(balance: LeaveBalance, employee_start: date | None = None) -> date:
    """Date accrual is measured from: last accrual, else the later of effective date and waiting-period end."""
    if balance.last_accrual_date is not None:
        return balance.last_accrual_date
    anchor = balance.effective_date
    if employee_start is not None and balance.waiting_period_days:
        anchor = max(anchor, employee_start + timedelta(days=balance.waiting_period_days))
    return anchor


def next_accrual_date(balance: LeaveBalance, employee_start: date | None = None) -> date | None:
    if balance.accrual_rate_minutes <= 0:
        return None
    return add_period(accrual_anchor(balance, employee_start), AccrualPeriod(balance.accrual_period))


def compute_accrual_minutes(rate_minutes: int, period: AccrualPeriod, start: date, end: date) -> int:
    """Prorated accrual for ``(start, end]``.

    Whole periods accrue the full rate; the trailing partial period accrues
    ``rate * elapsed_days // period_days``. Integer arithmetic throughout.
    """
    if rate_minutes <= 0 or end <= start:
        return 0

    total = 0
    cursor = start
    following = add_period(cursor, period)
    while following <= end:
        total += rate_minutes
        cursor = following
        following = add_period(cursor, period)

    elapsed = (end - cursor).days
    if elapsed > 0:
        total += rate_minutes * elapsed // (following - cursor).days
    return total


def cap_to_max(current: int, amount: int, max_minutes: int | None) -> int:
    """Clamp a credit so the balance does not exceed ``max_minutes``."""
    if max_minutes is None:
        return amount
    return max(0, min(amount, max_minutes - current))


def project_balance(balance: LeaveBalance, as_of: date, employee_start: date | None = None) -> int:
    """Balance expected on ``as_of`` if accruals keep running and nothing is used."""
    anchor = accrual_anchor(balance, employee_start)
    amount = compute_accrual_minutes(
        balance.accrual_rate_minutes, AccrualPeriod(balance.accrual_period), anchor, as_of
    )
    return balance.current_minutes + cap_to_max(balance.current_minutes, amount, balance.max_balance_minutes)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _workday_minutes(workday: int | None) -> int:
    return workday if workday else get_settings().default_workday_minutes


def _build_balance_response(
    balance: LeaveBalance,
    *,
    workday_minutes: int | None = None,
    employee_start: date | None = None,
) -> BalanceResponse:
    workday = _workday_minutes(workday_minutes)
    return BalanceResponse(
        id=balance.id,
        employee_id=balance.employee_id,
        leave_type_id=balance.leave_type_id,
        policy_id=balance.policy_id,
        current_minutes=balance.current_minutes,
        current_days=round(balance.current_minutes / workday, 2),
        accrual_rate_minutes=balance.accrual_rate_minutes,
        accrual_period=AccrualPeriod(balance.accrual_period),
        max_balance_minutes=balance.max_balance_minutes,
        carryover_limit_minutes=balance.carryover_limit_minutes,
        last_accrual_date=balance.last_accrual_date,
        next_accrual_date=next_accrual_date(balance, employee_start),
        ytd_used_minutes=balance.ytd_used_minutes,
        ytd_accrued_minutes=balance.ytd_accrued_minutes,
        effective_date=balance.effective_date,
        version=balance.version,
        updated_at=balance.updated_at,
    )


def build_transaction_response(entry: AccrualTransaction) -> TransactionResponse:
    return TransactionResponse(
        id=entry.id,
        balance_id=entry.balance_id,
        transaction_type=TransactionType(entry.transaction_type),
        amount_minutes=entry.amount_minutes,
        balance_after_minutes=entry.balance_after_minutes,
        transaction_date=entry.transaction_date,
        related_request_id=entry.related_request_id,
        actor_id=entry.actor_id,
        reason=entry.reason,
        metadata_json=entry.metadata_json,
        created_at=entry.created_at,
    )


async def _get_balance_for_update(session: AsyncSession, balance_id: uuid.UUID) -> LeaveBalance:
    """Lock and return the balance row, or raise NotFoundError."""
    result = await session.execute(
        select(LeaveBalance).where(col(LeaveBalance.id) == balance_id).with_for_update()
    )
    balance = result.scalar_one_or_none()
    if balance is None:
        msg = f"Leave balance {balance_id} not found"
        raise NotFoundError(msg)
    return balance


async def find_transaction_by_key(session: AsyncSession, key: str) -> AccrualTransaction | None:
    result = await session.execute(
        select(AccrualTransaction).where(col(AccrualTransaction.idempotency_key) == key)
    )
    return result.scalar_one_or_none()


def _validate_sign(transaction_type: TransactionType, amount: int) -> None:
    match transaction_type:
        case TransactionType.USAGE if amount >= 0:
            msg = "USAGE amounts must be negative"
            raise ValidationError(msg)
        case TransactionType.ACCRUAL if amount < 0:
            msg = "ACCRUAL amounts must not be negative"
            raise ValidationError(msg)
        case TransactionType.CARRYOVER if amount > 0:
            msg = "CARRYOVER amounts record forfeits and must not be positive"
            raise ValidationError(msg)
        case TransactionType.ADJUSTMENT if amount == 0:
            msg = "ADJUSTMENT amounts must be non-zero"
            raise ValidationError(msg)


def _bounded_amount(
    balance: LeaveBalance,
    transaction_type: TransactionType,
    amount: int,
    context: LedgerContext,
) -> tuple[int, dict[str, Any]]:
    """Check ``current + amount`` against ``[0, max]``; clamp where allowed, raise otherwise."""
    current = balance.current_minutes
    ceiling = balance.max_balance_minutes
    notes: dict[str, Any] = {}

    if current + amount < 0:
        if transaction_type != TransactionType.ADJUSTMENT or not context.corrective:
            raise InsufficientBalanceError(available_minutes=current, requested_minutes=-amount)
        notes = {"requested_minutes": amount, "clamped_minutes": -current}
        return -current, notes

    if ceiling is not None and current + amount > ceiling:
        if transaction_type == TransactionType.ACCRUAL or context.corrective:
            capped = cap_to_max(current, amount, ceiling)
            notes = {"requested_minutes": amount, "dropped_minutes": amount - capped}
            return capped, notes
        msg = f"Transaction would raise the balance to {current + amount}, above the maximum of {ceiling}"
        raise ValidationError(msg, details={"max_balance_minutes": ceiling, "current_minutes": current})

    return amount, notes


async def _post_transaction(
    session: AsyncSession,
    balance: LeaveBalance,
    transaction_type: TransactionType,
    amount_minutes: int,
    context: LedgerContext,
) -> AccrualTransaction | None:
    """Append a ledger entry to an already-locked balance and update it.

    Returns None when the idempotency key was already used.
    """
    # 1. Validate before touching anything so a rejection leaves no dirty state.
    _validate_sign(transaction_type, amount_minutes)
    if context.idempotency_key and await find_transaction_by_key(session, context.idempotency_key):
        return None
    amount, notes = _bounded_amount(balance, transaction_type, amount_minutes, context)

    before = model_to_audit_dict(balance)
    transaction_date = context.transaction_date or get_clock().today()

    # 2. Insert inside a savepoint so a concurrent duplicate only rolls back this insert.
    entry = AccrualTransaction(
        balance_id=balance.id,
        transaction_type=transaction_type.value,
        amount_minutes=amount,
        balance_after_minutes=balance.current_minutes + amount,
        transaction_date=transaction_date,
        related_request_id=context.related_request_id,
        actor_id=context.actor_id,
        reason=context.reason,
        idempotency_key=context.idempotency_key,
        metadata_json={**(context.metadata or {}), **notes} or None,
    )
    try:
        async with session.begin_nested():
            session.add(entry)
            await session.flush()
    except IntegrityError:
        return None

    # 3. Materialize.
    balance.current_minutes += amount
    if transaction_type == TransactionType.USAGE:
        balance.ytd_used_minutes += -amount
    elif transaction_type == TransactionType.ACCRUAL:
        balance.ytd_accrued_minutes += amount
        balance.last_accrual_date = transaction_date
    balance.version += 1
    balance.updated_at = get_clock().now()
    session.add(balance)
    await session.flush()

    # 4. Audit.
    await write_audit_log(
        session,
        actor_id=context.actor_id,
        entity_type=AuditEntityType.TRANSACTION,
        entity_id=entry.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(entry),
    )
    await write_audit_log(
        session,
        actor_id=context.actor_id,
        entity_type=AuditEntityType.LEAVE_BALANCE,
        entity_id=balance.id,
        action=AuditAction.UPDATE,
        before_json=before,
        after_json=model_to_audit_dict(balance),
    )
    logger.info(
        "Posted %s of %d minutes to balance %s (now %d)",
        transaction_type.value,
        amount,
        balance.id,
        balance.current_minutes,
    )
    return entry


# ---------------------------------------------------------------------------
# Public API (caller commits)
# ---------------------------------------------------------------------------


async def apply_transaction(
    session: AsyncSession,
    balance_id: uuid.UUID,
    transaction_type: TransactionType,
    amount_minutes: int,
    context: LedgerContext,
) -> LeaveBalance:
    """Apply one signed transaction to a balance under a row lock.

    Rejects anything that would leave the balance below zero or above its
    maximum, except corrective adjustments (clamped) and accruals (capped,
    excess dropped). Replaying an idempotency key is a no-op.
    """
    balance = await _get_balance_for_update(session, balance_id)
    await _post_transaction(session, balance, transaction_type, amount_minutes, context)
    return balance


async def post_usage(
    session: AsyncSession,
    balance: LeaveBalance,
    *,
    minutes: int,
    request_id: uuid.UUID,
    actor_id: uuid.UUID,
    transaction_date: date,
) -> AccrualTransaction | None:
    """Debit a locked balance for an approved leave request."""
    return await _post_transaction(
        session,
        balance,
        TransactionType.USAGE,
        -minutes,
        LedgerContext(
            actor_id=actor_id,
            reason="Leave request approved",
            related_request_id=request_id,
            transaction_date=transaction_date,
            idempotency_key=f"usage:{request_id}",
        ),
    )


async def post_reversal(
    session: AsyncSession,
    balance: LeaveBalance,
    *,
    minutes: int,
    request_id: uuid.UUID,
    actor_id: uuid.UUID,
    reason: str,
    transaction_date: date,
) -> AccrualTransaction | None:
    """Credit back an approved request with a compensating ADJUSTMENT."""
    return await _post_transaction(
        session,
        balance,
        TransactionType.ADJUSTMENT,
        minutes,
        LedgerContext(
            actor_id=actor_id,
            reason=reason,
            related_request_id=request_id,
            transaction_date=transaction_date,
            corrective=True,
            idempotency_key=f"reversal:{request_id}",
            metadata={"compensates": f"usage:{request_id}"},
        ),
    )


async def accrue(
    session: AsyncSession,
    balance_id: uuid.UUID,
    as_of: date,
    *,
    actor_id: uuid.UUID = SYSTEM_ACTOR_ID,
) -> AccrualTransaction | None:
    """Credit the prorated accrual earned since the last accrual.

    Returns None (no-op) when ``as_of`` is not after the last accrual date,
    the employee is still inside the waiting period, or nothing was earned.
    A credit that the maximum balance swallows entirely is still recorded
    as a zero-amount ACCRUAL so the accrual date advances.
    """
    balance = await _get_balance_for_update(session, balance_id)

    if balance.last_accrual_date is not None and as_of <= balance.last_accrual_date:
        return None

    employee = await get_employee_service().get_employee(balance.employee_id)
    employee_start = employee.start_date if employee is not None else None
    anchor = accrual_anchor(balance, employee_start)
    if as_of <= anchor:
        logger.debug("Balance %s not yet accruing (anchor %s, as_of %s)", balance.id, anchor, as_of)
        return None

    period = AccrualPeriod(balance.accrual_period)
    earned = compute_accrual_minutes(balance.accrual_rate_minutes, period, anchor, as_of)
    if earned <= 0:
        return None

    return await _post_transaction(
        session,
        balance,
        TransactionType.ACCRUAL,
        earned,
        LedgerContext(
            actor_id=actor_id,
            reason=f"{period.value} accrual",
            transaction_date=as_of,
            idempotency_key=f"accrual:{balance.id}:{as_of.isoformat()}",
            metadata={"period": period.value, "from": anchor.isoformat(), "computed_minutes": earned},
        ),
    )


async def carryover_year_end(
    session: AsyncSession,
    balance_id: uuid.UUID,
    year: int,
    *,
    actor_id: uuid.UUID = SYSTEM_ACTOR_ID,
) -> AccrualTransaction:
    """Close ``year``: keep ``min(current, carryover_limit)`` and forfeit the rest.

    The forfeit is a negative CARRYOVER entry (zero-amount when nothing is
    lost) so the year boundary is always visible in the ledger. Year-to-date
    counters reset. Running twice for the same year returns the first entry.
    """
    key = f"carryover:{balance_id}:{year}"
    balance = await _get_balance_for_update(session, balance_id)

    existing = await find_transaction_by_key(session, key)
    if existing is not None:
        return existing

    limit = balance.carryover_limit_minutes
    carried = balance.current_minutes if limit is None else min(balance.current_minutes, limit)
    forfeited = balance.current_minutes - carried

    entry = await _post_transaction(
        session,
        balance,
        TransactionType.CARRYOVER,
        -forfeited,
        LedgerContext(
            actor_id=actor_id,
            reason=f"Year-end carryover {year}",
            transaction_date=date(year, 12, 31),
            idempotency_key=key,
            metadata={"year": year, "carried_minutes": carried, "forfeited_minutes": forfeited},
        ),
    )
    if entry is None:
        # Lost a race with a concurrent run for the same year.
        existing = await find_transaction_by_key(session, key)
        if existing is None:
            msg = f"Carryover for balance {balance_id} and year {year} could not be recorded"
            raise ConflictError(msg)
        return existing

    balance.ytd_used_minutes = 0
    balance.ytd_accrued_minutes = 0
    session.add(balance)
    await session.flush()
    return entry


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------


async def get_balance_model(session: AsyncSession, balance_id: uuid.UUID) -> LeaveBalance:
    balance = await session.get(LeaveBalance, balance_id)
    if balance is None:
        msg = f"Leave balance {balance_id} not found"
        raise NotFoundError(msg)
    return balance


async def find_balance(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> LeaveBalance | None:
    query = select(LeaveBalance).where(
        col(LeaveBalance.employee_id) == employee_id,
        col(LeaveBalance.leave_type_id) == leave_type_id,
    )
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def get_balance(session: AsyncSession, balance_id: uuid.UUID) -> BalanceResponse:
    """Get a single balance with derived day values."""
    balance = await get_balance_model(session, balance_id)
    employee = await get_employee_service().get_employee(balance.employee_id)
    return _build_balance_response(
        balance,
        workday_minutes=employee.workday_minutes if employee else None,
        employee_start=employee.start_date if employee else None,
    )


async def list_employee_balances(session: AsyncSession, employee_id: uuid.UUID) -> BalanceListResponse:
    """All balances held by an employee."""
    result = await session.execute(
        select(LeaveBalance).where(col(LeaveBalance.employee_id) == employee_id).order_by(col(LeaveBalance.id))
    )
    balances = list(result.scalars().all())
    employee = await get_employee_service().get_employee(employee_id)
    items = [
        _build_balance_response(
            b,
            workday_minutes=employee.workday_minutes if employee else None,
            employee_start=employee.start_date if employee else None,
        )
        for b in balances
    ]
    return BalanceListResponse(items=items, total=len(items))


async def list_transactions(
    session: AsyncSession,
    balance_id: uuid.UUID,
    *,
    offset: int = 0,
    limit: int = 50,
) -> TransactionListResponse:
    """Paginated ledger for a balance, newest first."""
    await get_balance_model(session, balance_id)
    base = col(AccrualTransaction.balance_id) == balance_id

    count_result = await session.execute(select(func.count()).select_from(AccrualTransaction).where(base))
    total = count_result.scalar_one()

    result = await session.execute(
        select(AccrualTransaction)
        .where(base)
        .order_by(col(AccrualTransaction.created_at).desc(), col(AccrualTransaction.id))
        .offset(offset)
        .limit(limit)
    )
    items = [build_transaction_response(e) for e in result.scalars().all()]
    return TransactionListResponse(items=items, total=total)


async def reconcile_balance(session: AsyncSession, balance_id: uuid.UUID) -> ReconciliationResponse:
    """Compare the materialized balance with the sum of its ledger."""
    balance = await get_balance_model(session, balance_id)
    result = await session.execute(
        select(func.coalesce(func.sum(col(AccrualTransaction.amount_minutes)), 0)).where(
            col(AccrualTransaction.balance_id) == balance_id
        )
    )
    ledger_sum = int(result.scalar_one())
    drift = balance.current_minutes - ledger_sum
    if drift:
        logger.warning("Balance %s drifted from its ledger by %d minutes", balance_id, drift)
    return ReconciliationResponse(
        balance_id=balance_id,
        current_minutes=balance.current_minutes,
        ledger_sum_minutes=ledger_sum,
        drift_minutes=drift,
        consistent=drift == 0,
    )


async def get_projection(session: AsyncSession, balance_id: uuid.UUID, as_of: date) -> ProjectionResponse:
    balance = await get_balance_model(session, balance_id)
    employee = await get_employee_service().get_employee(balance.employee_id)
    projected = project_balance(balance, as_of, employee.start_date if employee else None)
    return ProjectionResponse(balance_id=balance_id, as_of=as_of, projected_minutes=projected)


# ---------------------------------------------------------------------------
# Write path (commits)
# ---------------------------------------------------------------------------


async def open_balance(
    session: AsyncSession,
    auth: AuthContext,
    employee_id: uuid.UUID,
    payload: OpenBalanceRequest,
) -> BalanceResponse:
    """Open an empty balance for an employee, configured from the active policy's accrual rule."""
    employee = await require_employee(employee_id)
    leave_type = await get_leave_type(session, payload.leave_type_id)
    effective_date = payload.effective_date or get_clock().today()

    if await find_balance(session, employee_id, leave_type.id) is not None:
        msg = f"Employee {employee_id} already has a {leave_type.code} balance"
        raise ConflictError(msg)

    policy = await resolve_leave_policy(session, employee, leave_type.id, effective_date)
    accrual_rule = parse_policy_rules(policy).accrual_rule if policy is not None else None

    balance = LeaveBalance(
        employee_id=employee_id,
        leave_type_id=leave_type.id,
        policy_id=policy.id if policy is not None else None,
        effective_date=effective_date,
    )
    if accrual_rule is not None:
        balance.accrual_rate_minutes = accrual_rule.rate_minutes
        balance.accrual_period = accrual_rule.period.value
        balance.max_balance_minutes = accrual_rule.max_balance_minutes
        balance.carryover_limit_minutes = accrual_rule.carryover_limit_minutes
        balance.waiting_period_days = accrual_rule.waiting_period_days

    try:
        async with session.begin_nested():
            session.add(balance)
    except IntegrityError:
        msg = f"Employee {employee_id} already has a {leave_type.code} balance"
        raise ConflictError(msg) from None

    await write_audit_log(
        session,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.LEAVE_BALANCE,
        entity_id=balance.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(balance),
    )
    await session.commit()
    return _build_balance_response(
        balance, workday_minutes=employee.workday_minutes, employee_start=employee.start_date
    )


async def create_adjustment(
    session: AsyncSession,
    auth: AuthContext,
    balance_id: uuid.UUID,
    payload: CreateAdjustmentRequest,
) -> TransactionResponse:
    """Post a manual ADJUSTMENT and commit it."""

    async def _operation() -> AccrualTransaction:
        balance = await _get_balance_for_update(session, balance_id)
        entry = await _post_transaction(
            session,
            balance,
            TransactionType.ADJUSTMENT,
            payload.amount_minutes,
            LedgerContext(
                actor_id=auth.user_id,
                reason=payload.reason,
                transaction_date=get_clock().today(),
                corrective=payload.corrective,
            ),
        )
        await session.commit()
        if entry is None:
            msg = "Adjustment was not recorded"
            raise ConflictError(msg)
        return entry

    entry = await with_storage_retry(session, _operation)
    return build_transaction_response(entry)
