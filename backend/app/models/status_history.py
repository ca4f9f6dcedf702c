# ruff: noqa: TC003
from __future__ import annotations

import uuid

import sqlalchemy as sa
from sqlmodel import Field

from app.models.base import TimestampMixin, UUIDBase


class StatusHistory(UUIDBase, TimestampMixin, table=True):
    """One row per workflow transition on a leave request or time entry."""

    __tablename__ = "status_history"
    __table_args__ = (sa.Index("ix_status_history_entity", "entity_type", "entity_id"),)

    entity_type: str = Field(max_length=50)
    entity_id: uuid.UUID
    from_status: str | None = Field(default=None, max_length=50)
    to_status: str = Field(max_length=50)
    actor_id: uuid.UUID
    note: str | None = None
