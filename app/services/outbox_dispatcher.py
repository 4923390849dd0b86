from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import Callable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.config import settings
from app.models.outbox import OutboxEvent
from app.services.notifications import notification_from_event
from app.services.push import PushClient


log = logging.getLogger(__name__)

Enqueue = Callable[[str, str], None]


def _enqueue_celery(outbox_id: str, lease_id: str) -> None:
    from worker.celery_app import celery

    celery.send_task("worker.tasks.process_outbox_event", args=[outbox_id, lease_id], queue="outbox")


async def requeue_expired_leases(db: AsyncSession, max_attempts: int | None = None) -> int:
    max_attempts = max_attempts or settings.outbox_max_attempts
    now = utcnow()
    expired = (
        OutboxEvent.status == "processing",
        OutboxEvent.lease_expires_at.is_not(None),
        OutboxEvent.lease_expires_at < now,
    )

    dead = await db.execute(
        update(OutboxEvent)
        .where(*expired, OutboxEvent.attempts >= max_attempts)
        .values(
            status="dead_lettered",
            dead_lettered_at=now,
            lease_id=None,
            lease_expires_at=None,
            last_error="dead-lettered: lease expired after max attempts",
        )
        .execution_options(synchronize_session=False)
    )
    if dead.rowcount:
        log.error("outbox: dead-lettered %d event(s) with expired leases", dead.rowcount)

    result = await db.execute(
        update(OutboxEvent)
        .where(*expired)
        .values(
            status="pending",
            lease_id=None,
            lease_expires_at=None,
            processing_started_at=None,
            last_error="requeued: lease expired",
        )
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


async def claim_outbox_event_ids(db: AsyncSession, batch_size: int = 100, lease_minutes: int = 10) -> tuple[str, list[str]]:
    lease_id = uuid.uuid4().hex
    now = utcnow()

    # Lock and select pending rows
    stmt = (
        select(OutboxEvent.id)
        .where(OutboxEvent.status == "pending")
        .order_by(OutboxEvent.created_at.asc(), OutboxEvent.id)
        .with_for_update(skip_locked=True)
        .limit(batch_size)
    )
    ids = list((await db.execute(stmt)).scalars().all())
    if not ids:
        return lease_id, []

    await db.execute(
        update(OutboxEvent)
        .where(OutboxEvent.id.in_(ids))
        .values(
            status="processing",
            processing_started_at=now,
            attempts=OutboxEvent.attempts + 1,
            last_error=None,
            lease_id=lease_id,
            lease_expires_at=now + timedelta(minutes=lease_minutes),
        )
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return lease_id, ids


async def dispatch_outbox(
    db: AsyncSession,
    batch_size: int = 100,
    lease_minutes: int = 10,
    enqueue: Enqueue = _enqueue_celery,
) -> int:
    # reclaim expired leases
    await requeue_expired_leases(db)

    lease_id, ids = await claim_outbox_event_ids(db, batch_size=batch_size, lease_minutes=lease_minutes)

    # Commit before enqueue so workers can read status/rows
    await db.commit()

    if not ids:
        return 0

    failed: list[tuple[str, str]] = []
    dispatched = 0

    for outbox_id in ids:
        try:
            enqueue(outbox_id, lease_id)
            dispatched += 1
        except Exception as e:
            failed.append((outbox_id, f"{type(e).__name__}: {e}"))

    # if enqueue fails, return those items to pending
    if failed:
        log.warning("dispatch: %d event(s) failed to enqueue", len(failed))
        for outbox_id, msg in failed:
            await db.execute(
                update(OutboxEvent)
                .where(OutboxEvent.id == outbox_id, OutboxEvent.lease_id == lease_id)
                .values(
                    status="pending",
                    # a broker outage is not a failed attempt
                    attempts=OutboxEvent.attempts - 1,
                    lease_id=None,
                    lease_expires_at=None,
                    processing_started_at=None,
                    last_error=f"enqueue failed: {msg}",
                )
                .execution_options(synchronize_session=False)
            )
        await db.commit()

    return dispatched


async def process_outbox_event(
    db: AsyncSession,
    outbox_id: str,
    lease_id: str,
    *,
    push: PushClient | None = None,
    max_attempts: int | None = None,
) -> bool:
    """
    Turn one claimed event into its notification (and optional push).

    Returns True when the event was completed under our lease. Any failure
    puts the event back to pending with last_error, or dead-letters it once
    it has used up max_attempts. The mutation that produced the event is
    already committed and is never touched.
    """
    ev = (
        await db.execute(
            select(OutboxEvent).where(OutboxEvent.id == outbox_id).execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if not ev:
        return False

    # Lease ownership check
    if ev.lease_id != lease_id or ev.status != "processing":
        # Another dispatcher reclaimed it or it's already done.
        return False

    attempts = ev.attempts
    max_attempts = max_attempts or settings.outbox_max_attempts

    try:
        notification = await notification_from_event(db, ev)

        if notification is not None and push is not None:
            result = await push.send(notification)
            if not result.ok:
                # push is a side channel; the stored notification stands
                log.warning("push failed for %s: %s", notification.id, result.error_message)

        # Mark done only if lease still matches
        result = await db.execute(
            update(OutboxEvent)
            .where(OutboxEvent.id == outbox_id, OutboxEvent.lease_id == lease_id)
            .values(status="done", processed_at=utcnow(), lease_id=None, lease_expires_at=None)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # lease lost; do not overwrite
            await db.rollback()
            return False

        await db.commit()
        return True

    except Exception as e:
        await db.rollback()
        log.exception("outbox event %s failed (attempt %d of %d)", outbox_id, attempts, max_attempts)
        error = f"{type(e).__name__}: {e}"
        if attempts >= max_attempts:
            log.error("outbox event %s dead-lettered", outbox_id)
            values = {"status": "dead_lettered", "dead_lettered_at": utcnow(), "last_error": error}
        else:
            values = {"status": "pending", "processing_started_at": None, "last_error": error}

        # only while the lease is still ours
        await db.execute(
            update(OutboxEvent)
            .where(OutboxEvent.id == outbox_id, OutboxEvent.lease_id == lease_id)
            .values(lease_id=None, lease_expires_at=None, **values)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return False


async def drain_outbox(
    db: AsyncSession,
    *,
    batch_size: int = 100,
    push: PushClient | None = None,
    max_attempts: int | None = None,
) -> int:
    """Claim and process one batch in-process (no broker)."""
    await requeue_expired_leases(db, max_attempts=max_attempts)
    lease_id, ids = await claim_outbox_event_ids(db, batch_size=batch_size)
    await db.commit()

    done = 0
    for outbox_id in ids:
        if await process_outbox_event(db, outbox_id, lease_id, push=push, max_attempts=max_attempts):
            done += 1
    return done
