from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.errors import NotFound
from app.schemas.common import CountResponse
from app.schemas.notification import MarkReadIn, NotificationOut
from app.services import notifications
from app.services.auth import Actor, get_actor

router = APIRouter(prefix="/notifications")


@router.get("", response_model=list[NotificationOut])
async def list_notifications(
    read: bool | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[NotificationOut]:
    rows = await notifications.list_notifications(db, actor.user_id, read=read, limit=limit, offset=offset)
    return [NotificationOut.model_validate(r) for r in rows]


@router.get("/unread-count", response_model=CountResponse)
async def unread_count(
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> CountResponse:
    return CountResponse(count=await notifications.unread_count(db, actor.user_id))


@router.post("/read", response_model=CountResponse)
async def mark_read(
    payload: MarkReadIn,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> CountResponse:
    updated = await notifications.mark_read(db, actor.user_id, payload.ids)
    await db.commit()
    return CountResponse(count=updated)


@router.delete("/{notification_id}", status_code=204)
async def delete_notification(
    notification_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> Response:
    if not await notifications.delete_notification(db, actor.user_id, notification_id):
        raise NotFound("Notification not found", notification_id=notification_id)
    await db.commit()
    return Response(status_code=204)
