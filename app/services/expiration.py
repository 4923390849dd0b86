from __future__ import annotations

import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.models.listing import Listing
from app.services.audit import audit
from app.services.listing_state import ListingStatus, transition
from app.services.outbox import emit


log = logging.getLogger(__name__)


async def sweep_expired_listings(db: AsyncSession, *, actor_id: str = "system") -> int:
    """
    Move every APPROVED listing whose expiry has passed to EXPIRED.

    A single conditional UPDATE ... RETURNING picks and flips the rows, then
    one listing.expired outbox event per affected row. Returns the number of
    listings expired; a second run with no time passing returns 0.
    Caller commits.
    """
    now = utcnow()
    target = transition(ListingStatus.APPROVED, ListingStatus.EXPIRED)

    stmt = (
        update(Listing)
        .where(
            Listing.status == ListingStatus.APPROVED.value,
            Listing.expires_at < now,
        )
        .values(status=target.value, boosted_until=None, updated_by=actor_id)
        .returning(Listing.id, Listing.seller_id, Listing.title)
        .execution_options(synchronize_session=False)
    )
    rows = (await db.execute(stmt)).all()
    if not rows:
        return 0
    count = len(rows)

    for r in rows:
        emit(
            db,
            aggregate_type="listing",
            aggregate_id=r.id,
            event_type="listing.expired",
            payload={"user_id": r.seller_id, "listing_id": r.id, "title": r.title},
            actor_id=actor_id,
        )

    await audit(
        db,
        actor_id=actor_id,
        action="listing.sweep_expired",
        target_type="listing",
        detail={"count": count},
    )
    await db.flush()

    log.info("sweep: expired %d listing(s)", count)
    return count
