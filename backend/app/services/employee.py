# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel

from app.exceptions import NotFoundError


class EmployeeInfo(BaseModel):
    """Employee metadata from the Employee Service."""

    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    start_date: date
    employment_type: str  # e.g. "FULL_TIME", "PART_TIME", "CONTRACT"
    department_id: str | None = None
    job_title: str | None = None
    workday_minutes: int = 480  # e.g. 480 for 8-hour day
    timezone: str = "UTC"
    attributes: dict[str, Any] = {}

    def tenure_days(self, on: date) -> int:
        return (on - self.start_date).days

    def in_group(self, group: str) -> bool:
        """Match a policy group by department, employment type, or job-title substring."""
        if group in (self.department_id, self.employment_type):
            return True
        return self.job_title is not None and group.lower() in self.job_title.lower()


@runtime_checkable
class EmployeeService(Protocol):
    """Interface for the Employee Service."""

    async def get_employee(self, employee_id: uuid.UUID) -> EmployeeInfo | None:
        """Fetch employee metadata. Returns None if not found."""
        ...

    async def list_employees(self) -> list[EmployeeInfo]:
        """List all employees."""
        ...


class InMemoryEmployeeService:
    """In-memory stub implementation for development."""

    def __init__(self) -> None:
        self._employees: dict[uuid.UUID, EmployeeInfo] = {}

    def seed(self, employee: EmployeeInfo) -> None:
        """Seed an employee for testing."""
        self._employees[employee.id] = employee

    async def get_employee(self, employee_id: uuid.UUID) -> EmployeeInfo | None:
        """Fetch employee metadata. Returns None if not found."""
        return self._employees.get(employee_id)

    async def list_employees(self) -> list[EmployeeInfo]:
        """List all employees."""
        return list(self._employees.values())


_employee_service: EmployeeService = InMemoryEmployeeService()


def get_employee_service() -> EmployeeService:
    """FastAPI dependency for the Employee Service."""
    return _employee_service


def set_employee_service(service: EmployeeService) -> None:
    """Override the service (for testing or production wiring)."""
    global _employee_service
    _employee_service = service


async def require_employee(employee_id: uuid.UUID) -> EmployeeInfo:
    """Fetch an employee or raise NotFoundError."""
    employee = await get_employee_service().get_employee(employee_id)
    if employee is None:
        msg = f"Employee {employee_id} not found"
        raise NotFoundError(msg)
    return employee
