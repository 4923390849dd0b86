from decimal import Decimal

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.schemas.listing import ListingCreate, ListingOut, ListingPageOut, ListingUpdate, SweepOut
from app.services import listings
from app.services.auth import Actor, get_actor, require_admin
from app.services.expiration import sweep_expired_listings

router = APIRouter(prefix="/products")


@router.get("", response_model=ListingPageOut)
async def list_products(
    category: str | None = Query(default=None),
    location: str | None = Query(default=None),
    min_price: Decimal | None = Query(default=None, ge=0),
    max_price: Decimal | None = Query(default=None, ge=0),
    status: str | None = Query(default=None),
    seller_id: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> ListingPageOut:
    filters = listings.ListingFilters(
        category=category,
        location=location,
        min_price=min_price,
        max_price=max_price,
        status=status,
        seller_id=seller_id,
        limit=limit,
        offset=offset,
    )
    page = await listings.search_listings(db, filters)
    return ListingPageOut(
        items=[ListingOut.model_validate(r) for r in page.items],
        total=page.total,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=ListingOut, status_code=201)
async def create_product(
    payload: ListingCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await listings.create_listing(db, seller_id=actor.user_id, **payload.model_dump())
    await db.commit()
    return ListingOut.model_validate(listing)


# static paths first so they are not captured by /{listing_id}
@router.get("/renewable", response_model=list[ListingOut])
async def renewable_products(
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[ListingOut]:
    rows = await listings.renewable_listings(db, actor.user_id)
    return [ListingOut.model_validate(r) for r in rows]


@router.post("/auto-expire", response_model=SweepOut)
async def auto_expire_products(
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> SweepOut:
    count = await sweep_expired_listings(db, actor_id=actor.user_id)
    await db.commit()
    return SweepOut(expired=count)


@router.get("/{listing_id}", response_model=ListingOut)
async def get_product(listing_id: str, db: AsyncSession = Depends(get_db)) -> ListingOut:
    await listings.record_view(db, listing_id)
    listing = await listings.get_listing(db, listing_id)
    await db.commit()
    return ListingOut.model_validate(listing)


@router.put("/{listing_id}", response_model=ListingOut)
async def update_product(
    listing_id: str,
    payload: ListingUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await listings.update_listing(
        db,
        listing_id=listing_id,
        owner_id=actor.user_id,
        changes=payload.model_dump(exclude_unset=True),
    )
    await db.commit()
    return ListingOut.model_validate(listing)


@router.delete("/{listing_id}", status_code=204)
async def delete_product(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> Response:
    await listings.delete_listing(db, listing_id=listing_id, owner_id=actor.user_id)
    await db.commit()
    return Response(status_code=204)


@router.post("/{listing_id}/renew", response_model=ListingOut)
async def renew_product(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await listings.renew_listing(db, listing_id=listing_id, owner_id=actor.user_id)
    await db.commit()
    return ListingOut.model_validate(listing)


@router.post("/{listing_id}/sold", response_model=ListingOut)
async def mark_product_sold(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await listings.mark_sold(db, listing_id=listing_id, owner_id=actor.user_id)
    await db.commit()
    return ListingOut.model_validate(listing)
