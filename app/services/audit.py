from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.models.audit_log import AuditLog


async def audit(
    db: AsyncSession,
    *,
    actor_id: str | None,
    action: str,
    target_type: str | None = None,
    target_id: str | None = None,
    detail: dict[str, Any] | None = None,
) -> AuditLog:
    # staged in the caller's transaction; lost if the mutation rolls back
    row = AuditLog(
        actor_id=actor_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        detail=detail or {},
        created_at=utcnow(),
    )
    db.add(row)
    return row


async def audit_trail(
    db: AsyncSession,
    *,
    target_type: str | None = None,
    target_id: str | None = None,
    actor_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[AuditLog]:
    stmt = select(AuditLog)
    if target_type:
        stmt = stmt.where(AuditLog.target_type == target_type)
    if target_id:
        stmt = stmt.where(AuditLog.target_id == target_id)
    if actor_id:
        stmt = stmt.where(AuditLog.actor_id == actor_id)
    stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id).limit(min(limit, 100)).offset(offset)
    return list((await db.execute(stmt)).scalars().all())
