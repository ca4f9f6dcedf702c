from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypeVar

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from app.exceptions import ConflictError, NotFoundError
from app.models.enums import AuditAction, AuditEntityType
from app.models.leave_type import LeaveType
from app.models.policy import LeavePolicy, OvertimePolicy
from app.schemas.policy import (
    LeavePolicyListResponse,
    LeavePolicyResponse,
    LeaveTypeListResponse,
    LeaveTypeResponse,
    OvertimePolicyListResponse,
    OvertimePolicyResponse,
    PolicyRules,
    rules_to_json,
)
from app.services.audit import model_to_audit_dict, write_audit_log

if TYPE_CHECKING:
    import uuid
    from collections.abc import Sequence
    from datetime import date

    from sqlalchemy.ext.asyncio import AsyncSession

    from app.schemas.auth import AuthContext
    from app.schemas.policy import CreateLeavePolicyRequest, CreateLeaveTypeRequest, CreateOvertimePolicyRequest
    from app.services.employee import EmployeeInfo

logger = logging.getLogger(__name__)

_P = TypeVar("_P", LeavePolicy, OvertimePolicy)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _build_leave_type_response(leave_type: LeaveType) -> LeaveTypeResponse:
    return LeaveTypeResponse(
        id=leave_type.id,
        code=leave_type.code,
        name=leave_type.name,
        paid=leave_type.paid,
        requires_approval=leave_type.requires_approval,
        max_consecutive_days=leave_type.max_consecutive_days,
        advance_notice_days=leave_type.advance_notice_days,
        allows_partial_days=leave_type.allows_partial_days,
        accrual_based=leave_type.accrual_based,
        excludes_non_working_days=leave_type.excludes_non_working_days,
        is_active=leave_type.is_active,
        created_at=leave_type.created_at,
    )


def _build_leave_policy_response(policy: LeavePolicy) -> LeavePolicyResponse:
    rules = PolicyRules.model_validate(
        {
            "eligibility_rules": policy.eligibility_rules or [],
            "usage_rules": policy.usage_rules or [],
            "accrual_rule": policy.accrual_rule,
            "applicable_groups": policy.applicable_groups or [],
        }
    )
    return LeavePolicyResponse(
        id=policy.id,
        name=policy.name,
        leave_type_id=policy.leave_type_id,
        effective_from=policy.effective_from,
        effective_to=policy.effective_to,
        applicable_groups=rules.applicable_groups,
        eligibility_rules=rules.eligibility_rules,
        usage_rules=rules.usage_rules,
        accrual_rule=rules.accrual_rule,
        is_active=policy.is_active,
        created_at=policy.created_at,
    )


def _build_overtime_policy_response(policy: OvertimePolicy) -> OvertimePolicyResponse:
    return OvertimePolicyResponse(
        id=policy.id,
        name=policy.name,
        daily_threshold_minutes=policy.daily_threshold_minutes,
        weekly_threshold_minutes=policy.weekly_threshold_minutes,
        overtime_multiplier=policy.overtime_multiplier,
        double_time_threshold_minutes=policy.double_time_threshold_minutes,
        double_time_multiplier=policy.double_time_multiplier,
        applicable_groups=policy.applicable_groups or [],
        effective_from=policy.effective_from,
        effective_to=policy.effective_to,
        is_active=policy.is_active,
        created_at=policy.created_at,
    )


def pick_single_applicable(
    candidates: Sequence[_P],
    employee: EmployeeInfo,
    *,
    label: str,
) -> _P | None:
    """Narrow effective policies to those whose groups match the employee.

    More than one match is a data-integrity problem and raises ConflictError
    instead of guessing.
    """
    matches = [
        p for p in candidates if not p.applicable_groups or any(employee.in_group(g) for g in p.applicable_groups)
    ]
    if len(matches) > 1:
        ids = sorted(str(p.id) for p in matches)
        logger.warning("Ambiguous %s for employee %s: %s", label, employee.id, ", ".join(ids))
        msg = f"Multiple active {label} policies apply to employee {employee.id}"
        raise ConflictError(msg, details={"policy_ids": ids})
    return matches[0] if matches else None


# ---------------------------------------------------------------------------
# Leave types
# ---------------------------------------------------------------------------


async def create_leave_type(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateLeaveTypeRequest,
) -> LeaveTypeResponse:
    """Create a leave type. Codes are stored upper-cased and must be unique."""
    leave_type = LeaveType(**payload.model_dump(exclude={"code"}), code=payload.code.upper())

    try:
        async with session.begin_nested():
            session.add(leave_type)
    except IntegrityError:
        msg = f"Leave type {leave_type.code} already exists"
        raise ConflictError(msg) from None

    await write_audit_log(
        session,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.LEAVE_TYPE,
        entity_id=leave_type.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(leave_type),
    )
    await session.commit()
    return _build_leave_type_response(leave_type)


async def get_leave_type(session: AsyncSession, leave_type_id: uuid.UUID) -> LeaveType:
    leave_type = await session.get(LeaveType, leave_type_id)
    if leave_type is None:
        msg = f"Leave type {leave_type_id} not found"
        raise NotFoundError(msg)
    return leave_type


async def list_leave_types(session: AsyncSession, *, active_only: bool = False) -> LeaveTypeListResponse:
    query = select(LeaveType)
    if active_only:
        query = query.where(col(LeaveType.is_active).is_(True))
    result = await session.execute(query.order_by(col(LeaveType.code)))
    items = [_build_leave_type_response(t) for t in result.scalars().all()]
    return LeaveTypeListResponse(items=items, total=len(items))


# ---------------------------------------------------------------------------
# Leave policies
# ---------------------------------------------------------------------------


async def create_leave_policy(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateLeavePolicyRequest,
) -> LeavePolicyResponse:
    """Create a leave policy with its eligibility, usage and accrual rules."""
    await get_leave_type(session, payload.leave_type_id)

    policy = LeavePolicy(
        name=payload.name,
        leave_type_id=payload.leave_type_id,
        effective_from=payload.effective_from,
        effective_to=payload.effective_to,
        applicable_groups=payload.applicable_groups,
        eligibility_rules=rules_to_json(payload.eligibility_rules),
        usage_rules=rules_to_json(payload.usage_rules),
        accrual_rule=payload.accrual_rule.model_dump(mode="json") if payload.accrual_rule else None,
        created_by=auth.user_id,
    )
    session.add(policy)
    await session.flush()

    await write_audit_log(
        session,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.LEAVE_POLICY,
        entity_id=policy.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(policy),
    )
    await session.commit()
    return _build_leave_policy_response(policy)


async def get_leave_policy(session: AsyncSession, policy_id: uuid.UUID) -> LeavePolicyResponse:
    policy = await session.get(LeavePolicy, policy_id)
    if policy is None:
        msg = f"Leave policy {policy_id} not found"
        raise NotFoundError(msg)
    return _build_leave_policy_response(policy)


async def list_leave_policies(
    session: AsyncSession,
    *,
    leave_type_id: uuid.UUID | None = None,
    offset: int = 0,
    limit: int = 50,
) -> LeavePolicyListResponse:
    """List leave policies, optionally for one leave type."""
    filters = []
    if leave_type_id is not None:
        filters.append(col(LeavePolicy.leave_type_id) == leave_type_id)

    count_result = await session.execute(select(func.count()).select_from(LeavePolicy).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeavePolicy)
        .where(*filters)
        .order_by(col(LeavePolicy.effective_from).desc(), col(LeavePolicy.name))
        .offset(offset)
        .limit(limit)
    )
    items = [_build_leave_policy_response(p) for p in result.scalars().all()]
    return LeavePolicyListResponse(items=items, total=total)


async def deactivate_leave_policy(
    session: AsyncSession,
    auth: AuthContext,
    policy_id: uuid.UUID,
) -> LeavePolicyResponse:
    """Retire a policy. Existing balances keep their accrual settings."""
    policy = await session.get(LeavePolicy, policy_id)
    if policy is None:
        msg = f"Leave policy {policy_id} not found"
        raise NotFoundError(msg)

    before = model_to_audit_dict(policy)
    policy.is_active = False
    session.add(policy)
    await session.flush()

    await write_audit_log(
        session,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.LEAVE_POLICY,
        entity_id=policy.id,
        action=AuditAction.UPDATE,
        before_json=before,
        after_json=model_to_audit_dict(policy),
    )
    await session.commit()
    return _build_leave_policy_response(policy)


async def resolve_leave_policy(
    session: AsyncSession,
    employee: EmployeeInfo,
    leave_type_id: uuid.UUID,
    on_date: date,
) -> LeavePolicy | None:
    """Return the one active policy for this employee and leave type on ``on_date``."""
    result = await session.execute(
        select(LeavePolicy).where(
            col(LeavePolicy.leave_type_id) == leave_type_id,
            col(LeavePolicy.is_active).is_(True),
            col(LeavePolicy.effective_from) <= on_date,
            or_(col(LeavePolicy.effective_to).is_(None), col(LeavePolicy.effective_to) >= on_date),
        )
    )
    return pick_single_applicable(list(result.scalars().all()), employee, label="leave")


# ---------------------------------------------------------------------------
# Overtime policies
# ---------------------------------------------------------------------------


async def create_overtime_policy(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateOvertimePolicyRequest,
) -> OvertimePolicyResponse:
    """Create an overtime policy."""
    policy = OvertimePolicy(**payload.model_dump())
    session.add(policy)
    await session.flush()

    await write_audit_log(
        session,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.OVERTIME_POLICY,
        entity_id=policy.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(policy),
    )
    await session.commit()
    return _build_overtime_policy_response(policy)


async def list_overtime_policies(session: AsyncSession) -> OvertimePolicyListResponse:
    result = await session.execute(
        select(OvertimePolicy).order_by(col(OvertimePolicy.effective_from).desc(), col(OvertimePolicy.name))
    )
    items = [_build_overtime_policy_response(p) for p in result.scalars().all()]
    return OvertimePolicyListResponse(items=items, total=len(items))
