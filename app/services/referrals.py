"""
Referral codes.

A referrer asks for a code, a newly registered user redeems it once, and both
are credited through the ledger in the redeeming transaction.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.config import settings
from app.core.errors import InvalidState, NotFound, ValidationError
from app.models.referral import Referral
from app.services import credits


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReferralStats:
    total: int
    completed: int
    pending: int
    credits_earned: int


def _new_code() -> str:
    return uuid.uuid4().hex[:8].upper()


def normalize_code(code: str) -> str:
    return code.strip().upper()


async def create_code(db: AsyncSession, user_id: str) -> Referral:
    code = _new_code()
    while (await db.execute(select(Referral.id).where(Referral.code == code))).scalar_one_or_none():
        code = _new_code()

    referral = Referral(code=code, referrer_id=user_id, status="pending", created_at=utcnow())
    db.add(referral)
    await db.flush()
    return referral


async def redeem(db: AsyncSession, *, code: str, new_user_id: str) -> Referral:
    """
    Complete a pending referral for `new_user_id` and credit both sides.

    The status flip is a single conditional UPDATE, so a code pays out once
    even when two users race for it.
    """
    code = normalize_code(code)

    already = (
        await db.execute(select(Referral.id).where(Referral.referred_id == new_user_id))
    ).scalar_one_or_none()
    if already:
        raise InvalidState("This account has already used a referral code")

    try:
        row = (
            await db.execute(
                update(Referral)
                .where(
                    Referral.code == code,
                    Referral.status == "pending",
                    Referral.referrer_id != new_user_id,
                )
                .values(status="completed", referred_id=new_user_id, completed_at=utcnow())
                .returning(Referral.id, Referral.referrer_id)
                .execution_options(synchronize_session=False)
            )
        ).one_or_none()
    except IntegrityError:
        # another code was redeemed for this account concurrently
        await db.rollback()
        raise InvalidState("This account has already used a referral code") from None

    if row is None:
        referral = (await db.execute(select(Referral).where(Referral.code == code))).scalar_one_or_none()
        if referral is None:
            raise NotFound("Unknown referral code", code=code)
        if referral.referrer_id == new_user_id:
            raise ValidationError("You cannot use your own referral code")
        raise InvalidState("Referral code already used", code=code)

    referral_id, referrer_id = row
    reward = settings.referral_reward
    await credits.earn(db, user_id=referrer_id, amount=reward, reason="referral", actor_id=new_user_id)
    await credits.earn(db, user_id=new_user_id, amount=reward, reason="referral", actor_id=new_user_id)
    log.info("referral %s redeemed by %s; %d credits each", referral_id, new_user_id, reward)

    return (
        await db.execute(
            select(Referral).where(Referral.id == referral_id).execution_options(populate_existing=True)
        )
    ).scalar_one()


async def stats(db: AsyncSession, user_id: str) -> ReferralStats:
    rows = (
        await db.execute(
            select(Referral.status, func.count())
            .where(Referral.referrer_id == user_id)
            .group_by(Referral.status)
        )
    ).all()
    counts = {status: int(n) for status, n in rows}
    completed = counts.get("completed", 0)
    pending = counts.get("pending", 0)
    return ReferralStats(
        total=completed + pending,
        completed=completed,
        pending=pending,
        credits_earned=completed * settings.referral_reward,
    )
