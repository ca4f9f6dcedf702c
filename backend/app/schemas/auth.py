# ruff: noqa: TC003
from __future__ import annotations

import uuid

from pydantic import BaseModel


class AuthContext(BaseModel):
    """Caller identity, already validated upstream and trusted as-is."""

    user_id: uuid.UUID
    roles: list[str] = ["employee"]
    employee_id: uuid.UUID | None = None
    managed_employee_ids: list[uuid.UUID] = []

    @property
    def is_admin(self) -> bool:
        return "admin" in self.roles or "hr" in self.roles

    def can_act_for(self, employee_id: uuid.UUID) -> bool:
        return self.is_admin or employee_id == self.employee_id or employee_id in self.managed_employee_ids

    def can_manage(self, employee_id: uuid.UUID) -> bool:
        return self.is_admin or employee_id in self.managed_employee_ids
