from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.schemas.audit import AuditOut
from app.schemas.listing import ListingOut
from app.schemas.moderation import ModerationIn, ModerationOut, StatsOut
from app.services.audit import audit_trail
from app.services.auth import Actor, require_admin, require_moderator
from app.services.moderation import listing_stats, moderate_listing, pending_listings

router = APIRouter(prefix="/admin")


@router.post("/products/moderate", response_model=ModerationOut)
async def moderate_product(
    payload: ModerationIn,
    actor: Actor = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
) -> ModerationOut:
    listing = await moderate_listing(
        db,
        listing_id=payload.product_id,
        action=payload.action,
        reason=payload.reason,
        admin_id=actor.user_id,
    )
    await db.commit()
    return ModerationOut(product_id=listing.id, status=listing.status)


@router.get("/products/pending", response_model=list[ListingOut])
async def pending_products(
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    _actor: Actor = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
) -> list[ListingOut]:
    rows = await pending_listings(db, limit=limit, offset=offset)
    return [ListingOut.model_validate(r) for r in rows]


@router.get("/stats", response_model=StatsOut)
async def stats(
    _actor: Actor = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
) -> StatsOut:
    return StatsOut(listings=await listing_stats(db))


@router.get("/audit", response_model=list[AuditOut])
async def audit_log(
    target_type: str | None = Query(default=None),
    target_id: str | None = Query(default=None),
    actor_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    _actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[AuditOut]:
    rows = await audit_trail(
        db, target_type=target_type, target_id=target_id, actor_id=actor_id, limit=limit, offset=offset
    )
    return [AuditOut.model_validate(r) for r in rows]
