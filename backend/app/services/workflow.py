"""Shared state-machine plumbing for leave requests and time entries."""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from sqlalchemy import func, select
from sqlmodel import col

from app.exceptions import InvalidTransitionError
from app.models.status_history import StatusHistory
from app.schemas.leave import StatusHistoryListResponse, StatusHistoryResponse

if TYPE_CHECKING:
    import enum
    import uuid
    from collections.abc import Mapping

    from sqlalchemy.ext.asyncio import AsyncSession

    from app.models.enums import AuditEntityType

_S = TypeVar("_S", bound="enum.StrEnum")


def transition(table: Mapping[tuple[_S, str], _S], entity: str, current: _S, action: str) -> _S:
    """Look up the next state, or raise InvalidTransitionError."""
    try:
        return table[(current, action)]
    except KeyError:
        raise InvalidTransitionError(entity, str(current), str(action)) from None


def record_status_change(
    session: AsyncSession,
    *,
    entity_type: AuditEntityType,
    entity_id: uuid.UUID,
    from_status: str | None,
    to_status: str,
    actor_id: uuid.UUID,
    note: str | None = None,
) -> StatusHistory:
    """Append a status-history row within the caller's transaction."""
    row = StatusHistory(
        entity_type=entity_type.value,
        entity_id=entity_id,
        from_status=from_status,
        to_status=to_status,
        actor_id=actor_id,
        note=note,
    )
    session.add(row)
    return row


async def list_status_history(
    session: AsyncSession,
    entity_type: AuditEntityType,
    entity_id: uuid.UUID,
) -> StatusHistoryListResponse:
    """Transitions recorded for one entity, oldest first."""
    filters = (col(StatusHistory.entity_type) == entity_type.value, col(StatusHistory.entity_id) == entity_id)
    total = (await session.execute(select(func.count()).select_from(StatusHistory).where(*filters))).scalar_one()
    result = await session.execute(
        select(StatusHistory).where(*filters).order_by(col(StatusHistory.created_at), col(StatusHistory.id))
    )
    items = [
        StatusHistoryResponse(
            id=row.id,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            from_status=row.from_status,
            to_status=row.to_status,
            actor_id=row.actor_id,
            note=row.note,
            created_at=row.created_at,
        )
        for row in result.scalars().all()
    ]
    return StatusHistoryListResponse(items=items, total=total)
