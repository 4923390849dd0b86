from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.models.outbox import OutboxEvent


def emit(
    db: AsyncSession,
    *,
    aggregate_type: str,
    aggregate_id: str,
    event_type: str,
    payload: dict[str, Any],
    actor_id: str | None = None,
) -> OutboxEvent:
    """
    Stage an outbox row in the caller's transaction.
    It only becomes visible to the dispatcher once the mutation commits.
    """
    ev = OutboxEvent(
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        event_type=event_type,
        payload=payload,
        status="pending",
        created_by=actor_id,
        created_at=utcnow(),
    )
    db.add(ev)
    return ev
