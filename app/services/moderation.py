from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AlreadyModerated, NotFound, ValidationError
from app.models.listing import Listing
from app.services.audit import audit
from app.services.listing_state import ListingStatus, transition
from app.services.outbox import emit


log = logging.getLogger(__name__)

ACTIONS = {
    "approve": ListingStatus.APPROVED,
    "reject": ListingStatus.REJECTED,
}


async def moderate_listing(
    db: AsyncSession,
    *,
    listing_id: str,
    action: str,
    reason: str | None,
    admin_id: str,
) -> Listing:
    """
    Approve or reject a PENDING listing.

    The row is locked for the check so two moderators cannot both pass the
    "still pending" test. A rejection must carry a reason; it is what the
    seller gets told.
    """
    if action not in ACTIONS:
        raise ValidationError(f"Unknown moderation action {action!r}", allowed=sorted(ACTIONS))

    reason = (reason or "").strip() or None
    if action == "reject" and not reason:
        raise ValidationError("A reason is required to reject a listing")

    stmt = select(Listing).where(Listing.id == listing_id).with_for_update()
    listing = (await db.execute(stmt)).scalar_one_or_none()
    if not listing:
        raise NotFound("Listing not found", listing_id=listing_id)

    if listing.status != ListingStatus.PENDING.value:
        raise AlreadyModerated("Listing was already moderated", status=listing.status)

    listing.status = transition(listing.status, ACTIONS[action]).value
    listing.updated_by = admin_id
    await db.flush()

    emit(
        db,
        aggregate_type="listing",
        aggregate_id=listing.id,
        event_type="listing.approved" if action == "approve" else "listing.rejected",
        payload={
            "user_id": listing.seller_id,
            "listing_id": listing.id,
            "title": listing.title,
            "reason": reason,
        },
        actor_id=admin_id,
    )
    await audit(
        db,
        actor_id=admin_id,
        action=f"listing.{action}",
        target_type="listing",
        target_id=listing.id,
        detail={"reason": reason},
    )

    log.info("moderation: admin=%s %s listing=%s", admin_id, action, listing.id)
    return listing


async def pending_listings(db: AsyncSession, *, limit: int = 50, offset: int = 0) -> list[Listing]:
    stmt = (
        select(Listing)
        .where(Listing.status == ListingStatus.PENDING.value)
        .order_by(Listing.created_at.asc(), Listing.id)
        .limit(min(limit, 100))
        .offset(offset)
    )
    return list((await db.execute(stmt)).scalars().all())


async def listing_stats(db: AsyncSession) -> dict[str, int]:
    rows = (await db.execute(select(Listing.status, func.count()).group_by(Listing.status))).all()
    counts = {s.value: 0 for s in ListingStatus}
    for status, n in rows:
        counts[status] = int(n)
    counts["TOTAL"] = sum(counts.values())
    return counts
