from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.schemas.internal import OutboxRunOut
from app.services.internal_admin import require_internal_admin
from app.services.outbox_dispatcher import dispatch_outbox, drain_outbox
from app.services.push import PushClient

router = APIRouter(prefix="/internal", dependencies=[Depends(require_internal_admin)])


@router.post("/outbox/dispatch", response_model=OutboxRunOut)
async def internal_dispatch_outbox(
    batch_size: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> OutboxRunOut:
    count = await dispatch_outbox(db, batch_size=batch_size)
    return OutboxRunOut(mode="enqueued", count=count)


@router.post("/outbox/drain", response_model=OutboxRunOut)
async def internal_drain_outbox(
    batch_size: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> OutboxRunOut:
    # broker-less fallback: process one batch inside the request
    push = PushClient()
    try:
        count = await drain_outbox(db, batch_size=batch_size, push=push)
    finally:
        await push.aclose()
    return OutboxRunOut(mode="processed", count=count)
