from __future__ import annotations

import logging
from typing import Any, Callable

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.models.notification import Notification
from app.models.outbox import OutboxEvent


log = logging.getLogger(__name__)


class UnknownEventType(Exception):
    pass


def _listing_approved(p: dict[str, Any]) -> tuple[str, str, str]:
    return (
        "product_approved",
        "Listing approved!",
        f'Your listing "{p["title"]}" was approved and is now visible.',
    )


def _listing_rejected(p: dict[str, Any]) -> tuple[str, str, str]:
    return (
        "product_rejected",
        "Listing rejected",
        f'Your listing "{p["title"]}" was rejected: {p.get("reason")}',
    )


def _listing_expired(p: dict[str, Any]) -> tuple[str, str, str]:
    return (
        "product_expired",
        "Listing expired",
        f'Your listing "{p["title"]}" has expired and is no longer visible.',
    )


def _listing_renewed(p: dict[str, Any]) -> tuple[str, str, str]:
    return (
        "product_renewed",
        "Listing renewed",
        f'Your listing "{p["title"]}" was renewed ({p["renewal_count"]} renewal(s) used).',
    )


def _listing_boosted(p: dict[str, Any]) -> tuple[str, str, str]:
    return (
        "product_boosted",
        "Listing boosted!",
        f'Your listing "{p["title"]}" is boosted for {p["duration_days"]} day(s).',
    )


def _credits_purchased(p: dict[str, Any]) -> tuple[str, str, str]:
    return (
        "credits_purchased",
        "Credits purchased!",
        f'{p["amount"]} credits were added to your account.',
    )


def _credits_earned(p: dict[str, Any]) -> tuple[str, str, str]:
    return (
        "credits_earned",
        "Credits earned!",
        f'You earned {p["amount"]} credits: {p["reason"]}',
    )


def _credits_refunded(p: dict[str, Any]) -> tuple[str, str, str]:
    return (
        "credits_refunded",
        "Refund processed",
        f'{p["amount"]} credits were refunded: {p["reason"]}',
    )


# event_type -> (notification type, title, message)
TEMPLATES: dict[str, Callable[[dict[str, Any]], tuple[str, str, str]]] = {
    "listing.approved": _listing_approved,
    "listing.rejected": _listing_rejected,
    "listing.expired": _listing_expired,
    "listing.renewed": _listing_renewed,
    "listing.boosted": _listing_boosted,
    "credits.purchased": _credits_purchased,
    "credits.earned": _credits_earned,
    "credits.refunded": _credits_refunded,
}

# events recorded for other consumers; nobody is notified
SILENT_EVENTS = frozenset({"listing.created", "listing.deleted", "listing.sold"})


def render(event_type: str, payload: dict[str, Any]) -> tuple[str, dict[str, Any]] | None:
    if event_type in SILENT_EVENTS:
        return None
    template = TEMPLATES.get(event_type)
    if template is None:
        raise UnknownEventType(event_type)

    ntype, title, message = template(payload)
    data = {k: v for k, v in payload.items() if k != "user_id"}
    return ntype, {"title": title, "message": message, "data": data}


async def notification_from_event(db: AsyncSession, ev: OutboxEvent) -> Notification | None:
    """
    Persist the notification an outbox event stands for.
    Idempotent per event: a redelivered event returns the existing row.
    """
    rendered = render(ev.event_type, ev.payload or {})
    if rendered is None:
        return None

    existing = (
        await db.execute(select(Notification).where(Notification.source_event_id == ev.id))
    ).scalar_one_or_none()
    if existing:
        return existing

    ntype, body = rendered
    n = Notification(
        user_id=ev.payload["user_id"],
        type=ntype,
        payload=body,
        read=False,
        source_event_id=ev.id,
        created_at=utcnow(),
    )
    db.add(n)
    await db.flush()
    return n


async def list_notifications(
    db: AsyncSession,
    user_id: str,
    *,
    read: bool | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[Notification]:
    stmt = select(Notification).where(Notification.user_id == user_id)
    if read is not None:
        stmt = stmt.where(Notification.read.is_(read))
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id).limit(min(limit, 100)).offset(offset)
    return list((await db.execute(stmt)).scalars().all())


async def unread_count(db: AsyncSession, user_id: str) -> int:
    stmt = select(func.count()).select_from(Notification).where(
        Notification.user_id == user_id,
        Notification.read.is_(False),
    )
    return int((await db.execute(stmt)).scalar_one())


async def mark_read(db: AsyncSession, user_id: str, notification_ids: list[str] | None = None) -> int:
    # scoped by user_id so nobody can touch another user's rows
    stmt = update(Notification).where(Notification.user_id == user_id, Notification.read.is_(False))
    if notification_ids is not None:
        stmt = stmt.where(Notification.id.in_(notification_ids))
    result = await db.execute(stmt.values(read=True).execution_options(synchronize_session=False))
    return int(result.rowcount or 0)


async def delete_notification(db: AsyncSession, user_id: str, notification_id: str) -> bool:
    result = await db.execute(
        delete(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    return bool(result.rowcount)
