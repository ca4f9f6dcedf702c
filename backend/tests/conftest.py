from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from app.db import get_session
from app.main import app
from app.models import SQLModel
from app.schemas.auth import AuthContext
from app.schemas.balance import CreateAdjustmentRequest, OpenBalanceRequest
from app.schemas.policy import AccrualRule, AdvanceNoticeRule, CreateLeavePolicyRequest, CreateLeaveTypeRequest
from app.services import ledger
from app.services import policy as policy_service
from app.services.clock import FixedClock, SystemClock, set_clock
from app.services.employee import EmployeeInfo, InMemoryEmployeeService, set_employee_service

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

    from sqlalchemy.ext.asyncio import AsyncEngine

    from app.schemas.balance import BalanceResponse
    from app.schemas.policy import LeavePolicyResponse, LeaveTypeResponse

EMPLOYEE_ID = uuid.UUID("11111111-1111-4111-8111-111111111111")
NEW_HIRE_ID = uuid.UUID("22222222-2222-4222-8222-222222222222")
CONTRACTOR_ID = uuid.UUID("33333333-3333-4333-8333-333333333333")
MANAGER_ID = uuid.UUID("44444444-4444-4444-8444-444444444444")
ADMIN_USER_ID = uuid.UUID("55555555-5555-4555-8555-555555555555")

# Monday, 2 March 2026, 09:00 UTC
NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

ADMIN_HEADERS = {"X-User-Id": str(ADMIN_USER_ID), "X-Roles": "admin"}
EMPLOYEE_HEADERS = {
    "X-User-Id": str(EMPLOYEE_ID),
    "X-Roles": "employee",
    "X-Employee-Id": str(EMPLOYEE_ID),
}
MANAGER_HEADERS = {
    "X-User-Id": str(MANAGER_ID),
    "X-Roles": "employee,manager",
    "X-Employee-Id": str(MANAGER_ID),
    "X-Managed-Employee-Ids": str(EMPLOYEE_ID),
}


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    """A fresh in-memory SQLite database per test.

    pysqlite's own transaction handling breaks SAVEPOINT, so BEGIN is
    emitted explicitly.
    """
    _engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(_engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, _record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(_engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")

    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield _engine
    await _engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
async def async_client(db_session: AsyncSession) -> AsyncIterator[AsyncClient]:
    """Async HTTP client with the database session dependency overridden."""

    async def _override_get_session() -> AsyncIterator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_session] = _override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Injected collaborators
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def clock() -> Iterator[FixedClock]:
    fixed = FixedClock(NOW)
    set_clock(fixed)
    yield fixed
    set_clock(SystemClock())


@pytest.fixture(autouse=True)
def employees() -> Iterator[InMemoryEmployeeService]:
    """Seed the in-memory employee service for every test."""
    svc = InMemoryEmployeeService()
    svc.seed(
        EmployeeInfo(
            id=EMPLOYEE_ID,
            first_name="Ada",
            last_name="Lovelace",
            email="ada@example.com",
            start_date=date(2024, 1, 15),
            employment_type="FULL_TIME",
            department_id="ENG",
            job_title="Senior Software Engineer",
            attributes={"location": "Berlin"},
        )
    )
    svc.seed(
        EmployeeInfo(
            id=NEW_HIRE_ID,
            first_name="Grace",
            last_name="Hopper",
            email="grace@example.com",
            start_date=date(2026, 2, 16),
            employment_type="FULL_TIME",
            department_id="OPS",
            job_title="Operations Analyst",
        )
    )
    svc.seed(
        EmployeeInfo(
            id=CONTRACTOR_ID,
            first_name="Alan",
            last_name="Turing",
            email="alan@example.com",
            start_date=date(2023, 6, 1),
            employment_type="CONTRACT",
            department_id="ENG",
            job_title="Consultant",
        )
    )
    svc.seed(
        EmployeeInfo(
            id=MANAGER_ID,
            first_name="Barbara",
            last_name="Liskov",
            email="barbara@example.com",
            start_date=date(2020, 9, 1),
            employment_type="FULL_TIME",
            department_id="ENG",
            job_title="Engineering Manager",
        )
    )
    set_employee_service(svc)
    yield svc
    set_employee_service(InMemoryEmployeeService())


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def admin() -> AuthContext:
    return AuthContext(user_id=ADMIN_USER_ID, roles=["admin"])


@pytest.fixture
def manager() -> AuthContext:
    return AuthContext(
        user_id=MANAGER_ID, roles=["employee", "manager"], employee_id=MANAGER_ID, managed_employee_ids=[EMPLOYEE_ID]
    )


@pytest.fixture
def employee_auth() -> AuthContext:
    return AuthContext(user_id=EMPLOYEE_ID, employee_id=EMPLOYEE_ID)


@pytest.fixture
async def vacation(db_session: AsyncSession, admin: AuthContext) -> LeaveTypeResponse:
    """Accrual-based, approval-required vacation leave."""
    return await policy_service.create_leave_type(
        db_session,
        admin,
        CreateLeaveTypeRequest(code="vac", name="Vacation", allows_partial_days=True),
    )


@pytest.fixture
async def vacation_policy(
    db_session: AsyncSession, admin: AuthContext, vacation: LeaveTypeResponse
) -> LeavePolicyResponse:
    """Monthly accrual of one day, capped at 20 days, 5 days carried over, 7 days' notice."""
    return await policy_service.create_leave_policy(
        db_session,
        admin,
        CreateLeavePolicyRequest(
            name="Standard vacation",
            leave_type_id=vacation.id,
            effective_from=date(2026, 1, 1),
            usage_rules=[AdvanceNoticeRule(days=7)],
            accrual_rule=AccrualRule(
                rate_minutes=480,
                max_balance_minutes=9600,
                carryover_limit_minutes=2400,
            ),
        ),
    )


@pytest.fixture
async def funded_balance(
    db_session: AsyncSession,
    admin: AuthContext,
    vacation: LeaveTypeResponse,
    vacation_policy: LeavePolicyResponse,
) -> BalanceResponse:
    """Ten days (4800 minutes) of vacation for EMPLOYEE_ID."""
    balance = await ledger.open_balance(
        db_session, admin, EMPLOYEE_ID, OpenBalanceRequest(leave_type_id=vacation.id, effective_date=date(2026, 1, 1))
    )
    await ledger.create_adjustment(
        db_session, admin, balance.id, CreateAdjustmentRequest(amount_minutes=4800, reason="Opening balance")
    )
    return await ledger.get_balance(db_session, balance.id)
