"""Leave request approval workflow.

PENDING is the only non-terminal state. Entering APPROVED is the one
transition with a ledger side effect, and the USAGE debit, the status
change, the history row and the audit event commit together or not at all.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import func, select, text
from sqlmodel import col

from app.db import with_storage_retry
from app.exceptions import (
    ConflictError,
    InsufficientBalanceError,
    InvalidTransitionError,
    NotFoundError,
    PolicyViolationError,
    ValidationError,
)
from app.models.balance import LeaveBalance
from app.models.enums import AuditAction, AuditEntityType, LeaveAction, LeaveRequestStatus, ViolationCode
from app.models.request import LeaveRequest
from app.schemas.leave import (
    EligibilityResponse,
    LeaveRequestListResponse,
    LeaveRequestResponse,
    RuleViolationResponse,
    StatusHistoryListResponse,
)
from app.services import ledger
from app.services.audit import model_to_audit_dict, write_audit_log
from app.services.calendar import fetch_holiday_dates
from app.services.clock import get_clock
from app.services.employee import require_employee
from app.services.policy import get_leave_type, resolve_leave_policy
from app.services.rules import EligibilityResult, RequestedRange, check_eligibility
from app.services.workflow import list_status_history, record_status_change, transition

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from app.models.leave_type import LeaveType
    from app.models.policy import LeavePolicy
    from app.schemas.auth import AuthContext
    from app.schemas.balance import TransactionResponse
    from app.schemas.leave import DecisionPayload, LeaveRequestPayload, ReversalPayload

logger = logging.getLogger(__name__)

LEAVE_TRANSITIONS: dict[tuple[LeaveRequestStatus, LeaveAction], LeaveRequestStatus] = {
    (LeaveRequestStatus.PENDING, LeaveAction.APPROVE): LeaveRequestStatus.APPROVED,
    (LeaveRequestStatus.PENDING, LeaveAction.DENY): LeaveRequestStatus.DENIED,
    (LeaveRequestStatus.PENDING, LeaveAction.CANCEL): LeaveRequestStatus.CANCELLED,
}

_ENTITY = "leave request"


@dataclass
class _Evaluation:
    result: EligibilityResult
    leave_type: LeaveType
    policy: LeavePolicy | None
    balance: LeaveBalance | None


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _build_request_response(request: LeaveRequest) -> LeaveRequestResponse:
    return LeaveRequestResponse(
        id=request.id,
        employee_id=request.employee_id,
        leave_type_id=request.leave_type_id,
        policy_id=request.policy_id,
        start_date=request.start_date,
        end_date=request.end_date,
        is_partial_day=request.is_partial_day,
        partial_minutes=request.partial_minutes,
        requested_minutes=request.requested_minutes,
        requested_days=request.requested_days,
        reason=request.reason,
        status=LeaveRequestStatus(request.status),
        submitted_at=request.submitted_at,
        reviewed_by=request.reviewed_by,
        reviewed_at=request.reviewed_at,
        review_note=request.review_note,
        created_at=request.created_at,
    )


async def _get_request_for_update(session: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
    result = await session.execute(
        select(LeaveRequest).where(col(LeaveRequest.id) == request_id).with_for_update()
    )
    request = result.scalar_one_or_none()
    if request is None:
        msg = f"Leave request {request_id} not found"
        raise NotFoundError(msg)
    return request


async def _blocking_requests(session: AsyncSession, payload: LeaveRequestPayload) -> list[LeaveRequest]:
    """Pending or approved requests of the same employee overlapping the requested dates."""
    result = await session.execute(
        select(LeaveRequest).where(
            col(LeaveRequest.employee_id) == payload.employee_id,
            col(LeaveRequest.status).in_([LeaveRequestStatus.PENDING.value, LeaveRequestStatus.APPROVED.value]),
            col(LeaveRequest.start_date) <= payload.end_date,
            col(LeaveRequest.end_date) >= payload.start_date,
        )
    )
    return list(result.scalars().all())


async def _pending_minutes(session: AsyncSession, employee_id: uuid.UUID, leave_type_id: uuid.UUID) -> int:
    """Minutes already reserved by the employee's PENDING requests of one leave type."""
    result = await session.execute(
        select(func.coalesce(func.sum(col(LeaveRequest.requested_minutes)), 0)).where(
            col(LeaveRequest.employee_id) == employee_id,
            col(LeaveRequest.leave_type_id) == leave_type_id,
            col(LeaveRequest.status) == LeaveRequestStatus.PENDING.value,
        )
    )
    return int(result.scalar_one())


def _advisory_lock_key(employee_id: uuid.UUID) -> int:
    return int.from_bytes(employee_id.bytes[:8], "big", signed=True)


async def lock_employee(session: AsyncSession, employee_id: uuid.UUID) -> None:
    """Serialize leave submissions for one employee until the transaction ends.

    Locks every balance row the employee has, whatever the leave type. On
    PostgreSQL a transaction-scoped advisory lock also covers employees with
    no balance rows yet. SQLite serializes writers on its own.
    """
    if session.get_bind().dialect.name == "postgresql":
        await session.execute(
            text("SELECT pg_advisory_xact_lock(:key)"), {"key": _advisory_lock_key(employee_id)}
        )
    await session.execute(
        select(LeaveBalance.id)
        .where(col(LeaveBalance.employee_id) == employee_id)
        .order_by(col(LeaveBalance.id))
        .with_for_update()
    )


async def _evaluate(session: AsyncSession, payload: LeaveRequestPayload, *, lock_balance: bool) -> _Evaluation:
    employee = await require_employee(payload.employee_id)
    leave_type = await get_leave_type(session, payload.leave_type_id)
    today = get_clock().today()

    if lock_balance:
        await lock_employee(session, employee.id)
    policy = await resolve_leave_policy(session, employee, leave_type.id, payload.start_date)
    balance = await ledger.find_balance(session, employee.id, leave_type.id, for_update=lock_balance)
    holidays = await fetch_holiday_dates(session, payload.start_date, payload.end_date)
    existing = await _blocking_requests(session, payload)
    pending = await _pending_minutes(session, employee.id, leave_type.id)

    result = check_eligibility(
        employee,
        policy,
        RequestedRange(
            start_date=payload.start_date,
            end_date=payload.end_date,
            is_partial_day=payload.is_partial_day,
            partial_minutes=payload.partial_minutes,
        ),
        leave_type=leave_type,
        balance=balance,
        existing_requests=existing,
        pending_minutes=pending,
        today=today,
        holidays=holidays,
    )
    return _Evaluation(result=result, leave_type=leave_type, policy=policy, balance=balance)


async def _apply_decision(
    session: AsyncSession,
    request: LeaveRequest,
    action: LeaveAction,
    *,
    actor_id: uuid.UUID,
    note: str | None,
) -> None:
    """Move a locked request to its next state, writing history and audit."""
    current = LeaveRequestStatus(request.status)
    new_status = transition(LEAVE_TRANSITIONS, _ENTITY, current, action)
    before = model_to_audit_dict(request)

    if new_status == LeaveRequestStatus.APPROVED:
        await _debit_for_approval(session, request, actor_id=actor_id)

    request.status = new_status.value
    if new_status in (LeaveRequestStatus.APPROVED, LeaveRequestStatus.DENIED):
        request.reviewed_by = actor_id
        request.reviewed_at = get_clock().now()
        request.review_note = note
    session.add(request)

    record_status_change(
        session,
        entity_type=AuditEntityType.LEAVE_REQUEST,
        entity_id=request.id,
        from_status=current.value,
        to_status=new_status.value,
        actor_id=actor_id,
        note=note,
    )
    await session.flush()
    await write_audit_log(
        session,
        actor_id=actor_id,
        entity_type=AuditEntityType.LEAVE_REQUEST,
        entity_id=request.id,
        action=AuditAction(action.value),
        before_json=before,
        after_json=model_to_audit_dict(request),
    )


async def _debit_for_approval(session: AsyncSession, request: LeaveRequest, *, actor_id: uuid.UUID) -> None:
    leave_type = await get_leave_type(session, request.leave_type_id)
    if not leave_type.accrual_based or request.requested_minutes == 0:
        return

    balance = await ledger.find_balance(session, request.employee_id, request.leave_type_id, for_update=True)
    if balance is None:
        raise InsufficientBalanceError(available_minutes=0, requested_minutes=request.requested_minutes)

    entry = await ledger.post_usage(
        session,
        balance,
        minutes=request.requested_minutes,
        request_id=request.id,
        actor_id=actor_id,
        transaction_date=request.start_date,
    )
    if entry is None:
        msg = f"Leave request {request.id} has already been debited"
        raise ConflictError(msg)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def evaluate_leave_request(session: AsyncSession, payload: LeaveRequestPayload) -> EligibilityResponse:
    """Dry-run the rule evaluator for a candidate request."""
    evaluation = await _evaluate(session, payload, lock_balance=False)
    result = evaluation.result
    return EligibilityResponse(
        eligible=result.eligible,
        violations=[
            RuleViolationResponse(code=v.code, message=v.message, details=v.details) for v in result.violations
        ],
        requested_minutes=result.requested_minutes,
        requested_days=result.requested_days,
        policy_id=evaluation.policy.id if evaluation.policy is not None else None,
    )


async def submit_leave_request(
    session: AsyncSession,
    auth: AuthContext,
    payload: LeaveRequestPayload,
) -> LeaveRequestResponse:
    """Evaluate and file a leave request.

    1. Lock the employee (serializes submissions across leave types).
    2. Run every rule; an overlap raises ConflictError naming the earlier
       request, any other violation raises PolicyViolationError.
    3. Insert the request as PENDING with history and audit.
    4. Leave types that skip approval are approved in the same transaction.
    5. Commit.
    """

    async def _operation() -> LeaveRequest:
        evaluation = await _evaluate(session, payload, lock_balance=True)
        result = evaluation.result
        violations = [v.as_dict() for v in result.violations]

        conflict = result.first(ViolationCode.CONFLICT)
        if conflict is not None:
            raise ConflictError(
                conflict.message,
                details={**conflict.details, "violations": violations},
            )
        if not result.eligible:
            raise PolicyViolationError("Leave request violates policy rules", violations)

        request = LeaveRequest(
            employee_id=payload.employee_id,
            leave_type_id=payload.leave_type_id,
            policy_id=evaluation.policy.id if evaluation.policy is not None else None,
            start_date=payload.start_date,
            end_date=payload.end_date,
            is_partial_day=payload.is_partial_day,
            partial_minutes=payload.partial_minutes,
            requested_minutes=result.requested_minutes,
            requested_days=result.requested_days,
            reason=payload.reason,
            status=LeaveRequestStatus.PENDING.value,
            submitted_at=get_clock().now(),
        )
        session.add(request)
        record_status_change(
            session,
            entity_type=AuditEntityType.LEAVE_REQUEST,
            entity_id=request.id,
            from_status=None,
            to_status=LeaveRequestStatus.PENDING.value,
            actor_id=auth.user_id,
        )
        await session.flush()
        await write_audit_log(
            session,
            actor_id=auth.user_id,
            entity_type=AuditEntityType.LEAVE_REQUEST,
            entity_id=request.id,
            action=AuditAction.SUBMIT,
            after_json=model_to_audit_dict(request),
        )

        if not evaluation.leave_type.requires_approval:
            await _apply_decision(
                session,
                request,
                LeaveAction.APPROVE,
                actor_id=ledger.SYSTEM_ACTOR_ID,
                note="Approval not required for this leave type",
            )

        await session.commit()
        return request

    request = await with_storage_retry(session, _operation)
    logger.info("Leave request %s submitted by %s (%s)", request.id, auth.user_id, request.status)
    return _build_request_response(request)


async def approve_leave_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: DecisionPayload | None = None,
) -> LeaveRequestResponse:
    """Approve a PENDING request and debit the balance in one transaction.

    The request row is locked first, so of two concurrent approvals the
    second sees APPROVED and fails with InvalidTransitionError. The USAGE
    entry's idempotency key guards the debit a second time.
    """

    async def _operation() -> LeaveRequest:
        request = await _get_request_for_update(session, request_id)
        await _apply_decision(
            session, request, LeaveAction.APPROVE, actor_id=auth.user_id, note=payload.note if payload else None
        )
        await session.commit()
        return request

    request = await with_storage_retry(session, _operation)
    logger.info("Leave request %s approved by %s", request.id, auth.user_id)
    return _build_request_response(request)


async def deny_leave_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: DecisionPayload | None = None,
) -> LeaveRequestResponse:
    """Deny a PENDING request. No ledger effect."""

    async def _operation() -> LeaveRequest:
        request = await _get_request_for_update(session, request_id)
        await _apply_decision(
            session, request, LeaveAction.DENY, actor_id=auth.user_id, note=payload.note if payload else None
        )
        await session.commit()
        return request

    request = await with_storage_retry(session, _operation)
    return _build_request_response(request)


async def cancel_leave_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: DecisionPayload | None = None,
) -> LeaveRequestResponse:
    """Cancel a PENDING request. Approved leave is undone with reverse_approved_leave instead."""

    async def _operation() -> LeaveRequest:
        request = await _get_request_for_update(session, request_id)
        await _apply_decision(
            session, request, LeaveAction.CANCEL, actor_id=auth.user_id, note=payload.note if payload else None
        )
        await session.commit()
        return request

    request = await with_storage_retry(session, _operation)
    return _build_request_response(request)


async def reverse_approved_leave(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: ReversalPayload,
) -> TransactionResponse:
    """Credit back an approved request with a compensating ADJUSTMENT.

    The request stays APPROVED and its USAGE entry stays in the ledger; the
    reversal is recorded in status history and the audit log.
    """

    async def _operation() -> TransactionResponse:
        request = await _get_request_for_update(session, request_id)
        if request.status != LeaveRequestStatus.APPROVED.value:
            raise InvalidTransitionError(_ENTITY, request.status, "REVERSE")

        balance = await ledger.find_balance(session, request.employee_id, request.leave_type_id, for_update=True)
        if balance is None:
            msg = f"Leave request {request.id} has no balance to credit"
            raise ValidationError(msg)

        usage = await ledger.find_transaction_by_key(session, f"usage:{request.id}")
        if usage is None:
            msg = f"Leave request {request.id} was never debited"
            raise ValidationError(msg)

        entry = await ledger.post_reversal(
            session,
            balance,
            minutes=-usage.amount_minutes,
            request_id=request.id,
            actor_id=auth.user_id,
            reason=payload.reason,
            transaction_date=get_clock().today(),
        )
        if entry is None:
            msg = f"Leave request {request.id} has already been reversed"
            raise ConflictError(msg)

        record_status_change(
            session,
            entity_type=AuditEntityType.LEAVE_REQUEST,
            entity_id=request.id,
            from_status=request.status,
            to_status=request.status,
            actor_id=auth.user_id,
            note=f"Reversed: {payload.reason}",
        )
        await write_audit_log(
            session,
            actor_id=auth.user_id,
            entity_type=AuditEntityType.LEAVE_REQUEST,
            entity_id=request.id,
            action=AuditAction.REVERSE,
            after_json={"reversal_transaction_id": str(entry.id), "amount_minutes": entry.amount_minutes},
        )
        await session.commit()
        return ledger.build_transaction_response(entry)

    return await with_storage_retry(session, _operation)


async def get_leave_request(session: AsyncSession, request_id: uuid.UUID) -> LeaveRequestResponse:
    request = await session.get(LeaveRequest, request_id)
    if request is None:
        msg = f"Leave request {request_id} not found"
        raise NotFoundError(msg)
    return _build_request_response(request)


async def list_leave_requests(
    session: AsyncSession,
    *,
    employee_ids: list[uuid.UUID] | None = None,
    status: LeaveRequestStatus | None = None,
    offset: int = 0,
    limit: int = 50,
) -> LeaveRequestListResponse:
    """List requests, newest submission first."""
    filters = []
    if employee_ids is not None:
        filters.append(col(LeaveRequest.employee_id).in_(employee_ids))
    if status is not None:
        filters.append(col(LeaveRequest.status) == status.value)

    count_result = await session.execute(select(func.count()).select_from(LeaveRequest).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeaveRequest)
        .where(*filters)
        .order_by(col(LeaveRequest.submitted_at).desc())
        .offset(offset)
        .limit(limit)
    )
    items = [_build_request_response(r) for r in result.scalars().all()]
    return LeaveRequestListResponse(items=items, total=total)


async def get_request_history(session: AsyncSession, request_id: uuid.UUID) -> StatusHistoryListResponse:
    await get_leave_request(session, request_id)
    return await list_status_history(session, AuditEntityType.LEAVE_REQUEST, request_id)
