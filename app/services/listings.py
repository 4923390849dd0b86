from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import days_from_now, utcnow
from app.core.config import settings
from app.core.errors import Forbidden, InvalidState, NotFound, RenewalLimitExceeded
from app.models.listing import Listing
from app.services.listing_state import PUBLIC_STATUS, ListingStatus, parse_status, transition
from app.services.outbox import emit


log = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

EDITABLE_FIELDS = ("title", "description", "price", "location", "category", "condition", "images")
NULLABLE_FIELDS = ("category", "condition")


@dataclass
class ListingFilters:
    category: str | None = None
    location: str | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    status: str | None = None
    seller_id: str | None = None
    limit: int = 20
    offset: int = 0


@dataclass
class ListingPage:
    items: list[Listing] = field(default_factory=list)
    total: int = 0


async def get_listing(db: AsyncSession, listing_id: str) -> Listing:
    listing = (await db.execute(select(Listing).where(Listing.id == listing_id))).scalar_one_or_none()
    if not listing:
        raise NotFound("Listing not found", listing_id=listing_id)
    return listing


async def get_owned_listing(db: AsyncSession, listing_id: str, owner_id: str) -> Listing:
    listing = await get_listing(db, listing_id)
    if listing.seller_id != owner_id:
        raise Forbidden("Not the owner of this listing", listing_id=listing_id)
    return listing


async def create_listing(
    db: AsyncSession,
    *,
    seller_id: str,
    title: str,
    description: str,
    price: Decimal,
    location: str,
    category: str | None = None,
    condition: str | None = None,
    images: list[str] | None = None,
) -> Listing:
    listing = Listing(
        seller_id=seller_id,
        title=title,
        description=description,
        price=price,
        location=location,
        category=category,
        condition=condition,
        images=list(images or []),
        status=ListingStatus.PENDING.value,
        expires_at=days_from_now(settings.listing_ttl_days),
        renewal_count=0,
        created_by=seller_id,
        updated_by=seller_id,
    )
    db.add(listing)
    await db.flush()

    emit(
        db,
        aggregate_type="listing",
        aggregate_id=listing.id,
        event_type="listing.created",
        payload={"user_id": seller_id, "listing_id": listing.id, "title": title},
        actor_id=seller_id,
    )
    return listing


def _search_conditions(filters: ListingFilters) -> list[Any]:
    conds: list[Any] = []
    if filters.category:
        conds.append(Listing.category == filters.category)
    if filters.location:
        conds.append(Listing.location.ilike(f"%{filters.location}%"))
    if filters.min_price is not None:
        conds.append(Listing.price >= filters.min_price)
    if filters.max_price is not None:
        conds.append(Listing.price <= filters.max_price)
    if filters.status:
        conds.append(Listing.status == parse_status(filters.status).value)
    if filters.seller_id:
        conds.append(Listing.seller_id == filters.seller_id)

    # public catalogue only shows approved listings unless asked otherwise
    if not filters.status and not filters.seller_id:
        conds.append(Listing.status == PUBLIC_STATUS.value)
    return conds


async def search_listings(db: AsyncSession, filters: ListingFilters) -> ListingPage:
    conds = _search_conditions(filters)
    now = utcnow()

    boosted_first = case((Listing.boosted_until > now, 1), else_=0)
    stmt = (
        select(Listing)
        .where(*conds)
        .order_by(boosted_first.desc(), Listing.created_at.desc(), Listing.id)
        .limit(max(1, min(filters.limit, MAX_PAGE_SIZE)))
        .offset(max(0, filters.offset))
    )
    items = list((await db.execute(stmt)).scalars().all())

    total = (await db.execute(select(func.count()).select_from(Listing).where(*conds))).scalar_one()
    return ListingPage(items=items, total=int(total))


async def record_view(db: AsyncSession, listing_id: str) -> None:
    await db.execute(
        update(Listing)
        .where(Listing.id == listing_id)
        .values(views=Listing.views + 1)
        .execution_options(synchronize_session=False)
    )


async def update_listing(db: AsyncSession, *, listing_id: str, owner_id: str, changes: dict[str, Any]) -> Listing:
    listing = await get_owned_listing(db, listing_id, owner_id)

    for key, value in changes.items():
        if key not in EDITABLE_FIELDS:
            continue
        if value is None and key not in NULLABLE_FIELDS:
            continue
        if key == "images":
            value = list(value or [])
        setattr(listing, key, value)

    listing.updated_by = owner_id
    await db.flush()
    return listing


async def delete_listing(db: AsyncSession, *, listing_id: str, owner_id: str) -> None:
    listing = await get_owned_listing(db, listing_id, owner_id)
    await db.delete(listing)

    emit(
        db,
        aggregate_type="listing",
        aggregate_id=listing_id,
        event_type="listing.deleted",
        payload={"user_id": owner_id, "listing_id": listing_id},
        actor_id=owner_id,
    )
    await db.flush()


async def renew_listing(db: AsyncSession, *, listing_id: str, owner_id: str) -> Listing:
    """
    Push the expiry back to now + ttl and bump renewal_count.

    Raises NotFound, Forbidden, InvalidState (status is not APPROVED, which
    includes listings the sweeper already expired) or RenewalLimitExceeded.
    """
    listing = await get_owned_listing(db, listing_id, owner_id)

    if listing.status != ListingStatus.APPROVED.value:
        raise InvalidState("Only approved listings can be renewed", status=listing.status)
    new_status = transition(listing.status, ListingStatus.APPROVED)

    if listing.renewal_count >= settings.max_renewals:
        raise RenewalLimitExceeded(
            f"Listing was already renewed {settings.max_renewals} times",
            renewal_count=listing.renewal_count,
            max_renewals=settings.max_renewals,
        )

    listing.status = new_status.value
    listing.expires_at = days_from_now(settings.listing_ttl_days)
    listing.renewal_count = listing.renewal_count + 1
    listing.updated_by = owner_id
    await db.flush()

    emit(
        db,
        aggregate_type="listing",
        aggregate_id=listing.id,
        event_type="listing.renewed",
        payload={
            "user_id": owner_id,
            "listing_id": listing.id,
            "title": listing.title,
            "renewal_count": listing.renewal_count,
            "expires_at": listing.expires_at.isoformat(),
        },
        actor_id=owner_id,
    )
    log.info("renew: listing=%s count=%d", listing.id, listing.renewal_count)
    return listing


async def renewable_listings(db: AsyncSession, owner_id: str) -> list[Listing]:
    # approved, expiring within a day, renewals left
    horizon = utcnow() + timedelta(days=1)
    stmt = (
        select(Listing)
        .where(
            Listing.seller_id == owner_id,
            Listing.status == ListingStatus.APPROVED.value,
            Listing.expires_at <= horizon,
            Listing.renewal_count < settings.max_renewals,
        )
        .order_by(Listing.expires_at.asc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def mark_sold(db: AsyncSession, *, listing_id: str, owner_id: str) -> Listing:
    listing = await get_owned_listing(db, listing_id, owner_id)
    listing.status = transition(listing.status, ListingStatus.SOLD).value
    listing.boosted_until = None
    listing.updated_by = owner_id
    await db.flush()

    emit(
        db,
        aggregate_type="listing",
        aggregate_id=listing.id,
        event_type="listing.sold",
        payload={"user_id": owner_id, "listing_id": listing.id, "title": listing.title},
        actor_id=owner_id,
    )
    return listing
