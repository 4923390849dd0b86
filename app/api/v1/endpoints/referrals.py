from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.schemas.referrals import RedeemIn, ReferralOut, ReferralStatsOut
from app.services import referrals
from app.services.auth import Actor, get_actor

router = APIRouter(prefix="/referrals")


@router.post("/code", response_model=ReferralOut, status_code=201)
async def create_referral_code(
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ReferralOut:
    referral = await referrals.create_code(db, actor.user_id)
    await db.commit()
    return ReferralOut.model_validate(referral)


@router.post("/redeem", response_model=ReferralOut)
async def redeem_referral_code(
    payload: RedeemIn,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ReferralOut:
    referral = await referrals.redeem(db, code=payload.code, new_user_id=actor.user_id)
    await db.commit()
    return ReferralOut.model_validate(referral)


@router.get("/stats", response_model=ReferralStatsOut)
async def referral_stats(
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> ReferralStatsOut:
    s = await referrals.stats(db, actor.user_id)
    return ReferralStatsOut(total=s.total, completed=s.completed, pending=s.pending, credits_earned=s.credits_earned)
