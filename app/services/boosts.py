from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import days_from_now, utcnow
from app.core.errors import InvalidState, NotFoundOrForbidden, ValidationError
from app.models.credit import CreditTransaction
from app.models.listing import Listing
from app.services import credits
from app.services.listing_state import ListingStatus
from app.services.outbox import emit


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoostTier:
    name: str
    cost: int
    days: int


BOOST_TIERS: dict[str, BoostTier] = {
    "basic": BoostTier(name="basic", cost=5, days=1),
    "premium": BoostTier(name="premium", cost=15, days=3),
    "urgent": BoostTier(name="urgent", cost=30, days=7),
}


@dataclass(frozen=True)
class BoostResult:
    listing_id: str
    tier: str
    cost: int
    duration_days: int
    boosted_until: datetime
    new_balance: int
    transaction_id: str


def get_tier(tier: str) -> BoostTier:
    try:
        return BOOST_TIERS[tier]
    except KeyError:
        raise ValidationError(f"Unknown boost tier {tier!r}", allowed=sorted(BOOST_TIERS)) from None


async def boost(db: AsyncSession, *, user_id: str, listing_id: str, tier: str) -> BoostResult:
    """
    Spend credits to raise a listing's display priority.

    Order of checks: tier, ownership, status, then the conditional decrement.
    Nothing is written unless the decrement succeeds. Boosts do not stack:
    the new window replaces whatever was left of the previous one.
    """
    t = get_tier(tier)

    listing = (await db.execute(select(Listing).where(Listing.id == listing_id))).scalar_one_or_none()
    if not listing or listing.seller_id != user_id:
        raise NotFoundOrForbidden("Listing not found or access denied", listing_id=listing_id)

    if listing.status != ListingStatus.APPROVED.value:
        raise InvalidState("Only approved listings can be boosted", status=listing.status)

    new_balance = await credits.decrement(db, user_id, t.cost)

    until = days_from_now(t.days, now=utcnow())
    listing.boost_tier = t.name
    listing.boosted_until = until
    listing.updated_by = user_id

    txn = CreditTransaction(
        user_id=user_id,
        type="boost",
        amount=-t.cost,
        balance_after=new_balance,
        description=f"{t.name} boost for {t.days} day(s)",
        reference=listing.id,
        created_at=utcnow(),
    )
    db.add(txn)
    await db.flush()

    emit(
        db,
        aggregate_type="listing",
        aggregate_id=listing.id,
        event_type="listing.boosted",
        payload={
            "user_id": user_id,
            "listing_id": listing.id,
            "title": listing.title,
            "tier": t.name,
            "cost": t.cost,
            "duration_days": t.days,
            "boosted_until": until.isoformat(),
        },
        actor_id=user_id,
    )
    await db.flush()

    log.info("boost: listing=%s tier=%s cost=%d balance=%d", listing.id, t.name, t.cost, new_balance)
    return BoostResult(
        listing_id=listing.id,
        tier=t.name,
        cost=t.cost,
        duration_days=t.days,
        boosted_until=until,
        new_balance=new_balance,
        transaction_id=txn.id,
    )
