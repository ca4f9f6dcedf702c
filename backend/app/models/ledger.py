# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from app.models.base import UUIDBase, now_utc


class AccrualTransaction(UUIDBase, table=True):
    """Append-only ledger entry recording every balance-affecting event."""

    __tablename__ = "accrual_transaction"
    __table_args__ = (
        sa.Index("ix_transaction_balance_created", "balance_id", "created_at"),
        sa.UniqueConstraint("idempotency_key", name="uq_transaction_idempotency"),
    )

    balance_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("leave_balance.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    transaction_type: str = Field(max_length=50)
    amount_minutes: int
    balance_after_minutes: int
    transaction_date: date
    related_request_id: uuid.UUID | None = Field(default=None, index=True)
    actor_id: uuid.UUID
    reason: str | None = None
    idempotency_key: str | None = Field(default=None, max_length=255)
    metadata_json: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
    created_at: datetime = Field(
        default_factory=now_utc,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now()},
    )
