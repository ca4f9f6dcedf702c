"""Integration tests for leave types, leave policies, overtime policies and
policy resolution.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import select
from sqlmodel import col

from app.exceptions import ConflictError
from app.models.audit import AuditLog
from app.schemas.policy import CreateLeavePolicyRequest
from app.services import policy as policy_service
from app.services.employee import require_employee
from tests.conftest import ADMIN_HEADERS, ADMIN_USER_ID, CONTRACTOR_ID, EMPLOYEE_HEADERS, EMPLOYEE_ID, NEW_HIRE_ID

if TYPE_CHECKING:
    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncSession

    from app.schemas.auth import AuthContext
    from app.schemas.policy import LeaveTypeResponse


def _policy_payload(leave_type_id: str, name: str = "Standard", **extra: object) -> dict:  # type: ignore[type-arg]
    return {"name": name, "leave_type_id": leave_type_id, "effective_from": "2026-01-01", **extra}


# ---------------------------------------------------------------------------
# Leave types
# ---------------------------------------------------------------------------


async def test_create_leave_type_uppercases_code(async_client: AsyncClient) -> None:
    resp = await async_client.post(
        "/leave-types", json={"code": "pto", "name": "Paid time off"}, headers=ADMIN_HEADERS
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["code"] == "PTO"
    assert data["requires_approval"] is True
    assert data["is_active"] is True


async def test_create_leave_type_duplicate_code(async_client: AsyncClient) -> None:
    payload = {"code": "SICK", "name": "Sick"}
    assert (await async_client.post("/leave-types", json=payload, headers=ADMIN_HEADERS)).status_code == 201
    resp = await async_client.post("/leave-types", json={"code": "sick", "name": "Sick again"}, headers=ADMIN_HEADERS)
    assert resp.status_code == 409
    assert resp.json()["error"] == "ConflictError"


async def test_create_leave_type_missing_fields(async_client: AsyncClient) -> None:
    resp = await async_client.post("/leave-types", json={"code": "X"}, headers=ADMIN_HEADERS)
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Leave policies
# ---------------------------------------------------------------------------


async def test_create_policy_with_rules(async_client: AsyncClient, vacation: LeaveTypeResponse) -> None:
    payload = _policy_payload(
        str(vacation.id),
        applicable_groups=["ENG"],
        eligibility_rules=[{"kind": "EMPLOYMENT_TYPE", "operator": "IN", "value": ["FULL_TIME"]}],
        usage_rules=[{"kind": "MAX_CONSECUTIVE_DAYS", "max_days": 10}],
        accrual_rule={"rate_minutes": 800, "period": "BIWEEKLY", "waiting_period_days": 90},
    )
    resp = await async_client.post("/leave-policies", json=payload, headers=ADMIN_HEADERS)
    assert resp.status_code == 201
    data = resp.json()
    assert data["applicable_groups"] == ["ENG"]
    assert data["eligibility_rules"][0]["value"] == ["FULL_TIME"]
    assert data["usage_rules"] == [{"kind": "MAX_CONSECUTIVE_DAYS", "max_days": 10, "is_active": True}]
    assert data["accrual_rule"]["period"] == "BIWEEKLY"

    fetched = await async_client.get(f"/leave-policies/{data['id']}", headers=EMPLOYEE_HEADERS)
    assert fetched.json()["usage_rules"] == data["usage_rules"]


async def test_create_policy_for_unknown_leave_type(async_client: AsyncClient) -> None:
    resp = await async_client.post("/leave-policies", json=_policy_payload(str(uuid.uuid4())), headers=ADMIN_HEADERS)
    assert resp.status_code == 404


async def test_get_policy_not_found(async_client: AsyncClient) -> None:
    resp = await async_client.get(f"/leave-policies/{uuid.uuid4()}", headers=ADMIN_HEADERS)
    assert resp.status_code == 404


async def test_list_policies_pagination(async_client: AsyncClient, vacation: LeaveTypeResponse) -> None:
    for i in range(3):
        await async_client.post(
            "/leave-policies", json=_policy_payload(str(vacation.id), name=f"Policy {i}"), headers=ADMIN_HEADERS
        )

    resp = await async_client.get("/leave-policies?offset=0&limit=2", headers=ADMIN_HEADERS)
    data = resp.json()
    assert data["total"] == 3
    assert [p["name"] for p in data["items"]] == ["Policy 0", "Policy 1"]

    resp2 = await async_client.get("/leave-policies?offset=2&limit=2", headers=ADMIN_HEADERS)
    assert len(resp2.json()["items"]) == 1


async def test_policy_changes_are_audited(
    async_client: AsyncClient, db_session: AsyncSession, vacation: LeaveTypeResponse
) -> None:
    created = await async_client.post("/leave-policies", json=_policy_payload(str(vacation.id)), headers=ADMIN_HEADERS)
    policy_id = created.json()["id"]
    await async_client.post(f"/leave-policies/{policy_id}/deactivate", headers=ADMIN_HEADERS)

    result = await db_session.execute(
        select(AuditLog)
        .where(col(AuditLog.entity_id) == uuid.UUID(policy_id))
        .order_by(col(AuditLog.created_at))
    )
    logs = result.scalars().all()
    assert [log.action for log in logs] == ["CREATE", "UPDATE"]
    assert all(log.actor_id == ADMIN_USER_ID for log in logs)
    assert logs[1].before_json is not None
    assert logs[1].before_json["is_active"] is True
    assert logs[1].after_json is not None
    assert logs[1].after_json["is_active"] is False


async def test_overtime_policy_list(async_client: AsyncClient) -> None:
    await async_client.post(
        "/overtime-policies",
        json={
            "name": "Warehouse",
            "effective_from": "2026-01-01",
            "double_time_threshold_minutes": 720,
            "double_time_multiplier": 2.0,
            "applicable_groups": ["OPS"],
        },
        headers=ADMIN_HEADERS,
    )
    resp = await async_client.get("/overtime-policies", headers=EMPLOYEE_HEADERS)
    assert resp.status_code == 200
    assert [p["name"] for p in resp.json()["items"]] == ["Warehouse"]
    assert resp.json()["items"][0]["double_time_multiplier"] == 2.0


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


async def _create(
    session: AsyncSession, admin: AuthContext, leave_type: LeaveTypeResponse, name: str, **extra: object
) -> uuid.UUID:
    payload = CreateLeavePolicyRequest.model_validate(
        {"name": name, "leave_type_id": leave_type.id, "effective_from": date(2026, 1, 1), **extra}
    )
    return (await policy_service.create_leave_policy(session, admin, payload)).id


async def test_resolution_matches_groups(
    db_session: AsyncSession, admin: AuthContext, vacation: LeaveTypeResponse
) -> None:
    eng = await _create(db_session, admin, vacation, "Engineering", applicable_groups=["ENG"])
    ops = await _create(db_session, admin, vacation, "Operations", applicable_groups=["OPS"])

    for employee_id, expected in ((EMPLOYEE_ID, eng), (NEW_HIRE_ID, ops)):
        employee = await require_employee(employee_id)
        resolved = await policy_service.resolve_leave_policy(db_session, employee, vacation.id, date(2026, 3, 2))
        assert resolved is not None
        assert resolved.id == expected


async def test_resolution_respects_window_and_activity(
    db_session: AsyncSession, admin: AuthContext, vacation: LeaveTypeResponse
) -> None:
    await _create(db_session, admin, vacation, "Last year", effective_to=date(2026, 1, 31))
    retired = await _create(db_session, admin, vacation, "Retired")
    await policy_service.deactivate_leave_policy(db_session, admin, retired)

    employee = await require_employee(EMPLOYEE_ID)
    assert await policy_service.resolve_leave_policy(db_session, employee, vacation.id, date(2026, 3, 2)) is None
    resolved = await policy_service.resolve_leave_policy(db_session, employee, vacation.id, date(2026, 1, 15))
    assert resolved is not None
    assert resolved.name == "Last year"


async def test_resolution_rejects_ambiguity(
    db_session: AsyncSession, admin: AuthContext, vacation: LeaveTypeResponse
) -> None:
    await _create(db_session, admin, vacation, "Everyone")
    await _create(db_session, admin, vacation, "Contractors", applicable_groups=["CONTRACT"])

    contractor = await require_employee(CONTRACTOR_ID)
    with pytest.raises(ConflictError) as exc_info:
        await policy_service.resolve_leave_policy(db_session, contractor, vacation.id, date(2026, 3, 2))
    assert len(exc_info.value.details["policy_ids"]) == 2

    # The group-scoped policy does not apply to full-time staff.
    employee = await require_employee(EMPLOYEE_ID)
    resolved = await policy_service.resolve_leave_policy(db_session, employee, vacation.id, date(2026, 3, 2))
    assert resolved is not None
    assert resolved.name == "Everyone"
