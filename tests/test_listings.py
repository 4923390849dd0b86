from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.clock import as_utc, utcnow
from app.core.errors import Forbidden, InvalidState, NotFound, RenewalLimitExceeded, ValidationError
from app.models.outbox import OutboxEvent
from app.services import boosts, credits, listings


async def _create(db, seller_id: str, title: str = "Canapé trois places") -> object:
    return await listings.create_listing(
        db,
        seller_id=seller_id,
        title=title,
        description="Canapé en tissu gris, très bon état.",
        price=Decimal("200.00"),
        location="Abidjan",
        category="maison",
        condition="Occasion",
        images=["https://cdn.test.local/a.jpg", "https://cdn.test.local/b.jpg"],
    )


@pytest.mark.asyncio
async def test_create_listing_is_pending_for_seven_days(db_session, seed_users):
    before = utcnow()
    listing = await _create(db_session, seed_users["seller"]["user_id"])
    await db_session.commit()

    assert listing.status == "PENDING"
    assert listing.renewal_count == 0
    assert listing.images == ["https://cdn.test.local/a.jpg", "https://cdn.test.local/b.jpg"]
    expires = as_utc(listing.expires_at)
    assert before + timedelta(days=7) <= expires <= utcnow() + timedelta(days=7)

    ev = (await db_session.execute(select(OutboxEvent))).scalar_one()
    assert ev.event_type == "listing.created"
    assert ev.aggregate_id == listing.id


@pytest.mark.asyncio
async def test_renew_three_times_then_limit(db_session, seed_users, seed_listing):
    seller = seed_users["seller"]["user_id"]

    for n in (1, 2, 3):
        renewed = await listings.renew_listing(db_session, listing_id=seed_listing.id, owner_id=seller)
        assert renewed.renewal_count == n
        assert renewed.status == "APPROVED"
    await db_session.commit()

    with pytest.raises(RenewalLimitExceeded):
        await listings.renew_listing(db_session, listing_id=seed_listing.id, owner_id=seller)

    await db_session.refresh(seed_listing)
    assert seed_listing.renewal_count == 3


@pytest.mark.asyncio
async def test_renew_pushes_expiry_from_now(db_session, seed_users, seed_listing):
    seed_listing.expires_at = utcnow() + timedelta(hours=2)
    await db_session.commit()

    before = utcnow()
    renewed = await listings.renew_listing(
        db_session, listing_id=seed_listing.id, owner_id=seed_users["seller"]["user_id"]
    )
    assert as_utc(renewed.expires_at) >= before + timedelta(days=7)


@pytest.mark.asyncio
async def test_renew_checks_owner_and_existence(db_session, seed_users, seed_listing):
    with pytest.raises(Forbidden):
        await listings.renew_listing(db_session, listing_id=seed_listing.id, owner_id=seed_users["other"]["user_id"])
    with pytest.raises(NotFound):
        await listings.renew_listing(db_session, listing_id="lst_nope", owner_id=seed_users["seller"]["user_id"])


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["PENDING", "EXPIRED", "SOLD", "REJECTED"])
async def test_renew_requires_approved(db_session, seed_users, seed_listing, status):
    seed_listing.status = status
    await db_session.commit()

    with pytest.raises(InvalidState):
        await listings.renew_listing(db_session, listing_id=seed_listing.id, owner_id=seed_users["seller"]["user_id"])


@pytest.mark.asyncio
async def test_search_defaults_to_approved(db_session, seed_users, seed_listing):
    seller = seed_users["seller"]["user_id"]
    await _create(db_session, seller, title="Pending one")
    await db_session.commit()

    page = await listings.search_listings(db_session, listings.ListingFilters())
    assert [item.id for item in page.items] == [seed_listing.id]
    assert page.total == 1

    pending = await listings.search_listings(db_session, listings.ListingFilters(status="pending"))
    assert [item.title for item in pending.items] == ["Pending one"]

    mine = await listings.search_listings(db_session, listings.ListingFilters(seller_id=seller))
    assert mine.total == 2


@pytest.mark.asyncio
async def test_search_rejects_unknown_status(db_session, seed_users):
    with pytest.raises(ValidationError):
        await listings.search_listings(db_session, listings.ListingFilters(status="ARCHIVED"))


@pytest.mark.asyncio
async def test_search_filters_by_price_and_location(db_session, seed_users, seed_listing):
    hit = await listings.search_listings(
        db_session,
        listings.ListingFilters(location="dakar", min_price=Decimal("100"), max_price=Decimal("200")),
    )
    assert hit.total == 1

    miss = await listings.search_listings(db_session, listings.ListingFilters(max_price=Decimal("99")))
    assert miss.total == 0


@pytest.mark.asyncio
async def test_boosted_listings_come_first(db_session, seed_users, seed_listing):
    seller = seed_users["seller"]["user_id"]
    newer = await _create(db_session, seller, title="Newer listing")
    newer.status = "APPROVED"
    await db_session.commit()

    await credits.purchase(db_session, user_id=seller, amount=5, payment_method="stripe")
    await boosts.boost(db_session, user_id=seller, listing_id=seed_listing.id, tier="basic")
    await db_session.commit()

    page = await listings.search_listings(db_session, listings.ListingFilters())
    assert [item.id for item in page.items][0] == seed_listing.id
    assert page.total == 2


@pytest.mark.asyncio
async def test_update_listing_ignores_unknown_and_null_required_fields(db_session, seed_users, seed_listing):
    seller = seed_users["seller"]["user_id"]
    updated = await listings.update_listing(
        db_session,
        listing_id=seed_listing.id,
        owner_id=seller,
        changes={"price": Decimal("120.00"), "title": None, "status": "SOLD", "category": None},
    )
    await db_session.commit()

    assert updated.price == Decimal("120.00")
    assert updated.title == "Vélo de course"
    assert updated.status == "APPROVED"
    assert updated.category is None

    with pytest.raises(Forbidden):
        await listings.update_listing(
            db_session, listing_id=seed_listing.id, owner_id=seed_users["other"]["user_id"], changes={}
        )


@pytest.mark.asyncio
async def test_mark_sold_is_terminal(db_session, seed_users, seed_listing):
    seller = seed_users["seller"]["user_id"]
    sold = await listings.mark_sold(db_session, listing_id=seed_listing.id, owner_id=seller)
    await db_session.commit()
    assert sold.status == "SOLD"

    with pytest.raises(InvalidState):
        await listings.mark_sold(db_session, listing_id=seed_listing.id, owner_id=seller)


@pytest.mark.asyncio
async def test_record_view_increments(db_session, seed_listing):
    await listings.record_view(db_session, seed_listing.id)
    await listings.record_view(db_session, seed_listing.id)
    await db_session.commit()

    await db_session.refresh(seed_listing)
    assert seed_listing.views == 2


@pytest.mark.asyncio
async def test_delete_listing(db_session, seed_users, seed_listing):
    await listings.delete_listing(db_session, listing_id=seed_listing.id, owner_id=seed_users["seller"]["user_id"])
    await db_session.commit()

    with pytest.raises(NotFound):
        await listings.get_listing(db_session, seed_listing.id)


@pytest.mark.asyncio
async def test_renewable_listings(db_session, seed_users, seed_listing):
    seller = seed_users["seller"]["user_id"]
    assert await listings.renewable_listings(db_session, seller) == []

    seed_listing.expires_at = utcnow() + timedelta(hours=6)
    await db_session.commit()
    rows = await listings.renewable_listings(db_session, seller)
    assert [r.id for r in rows] == [seed_listing.id]
