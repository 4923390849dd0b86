from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.errors import NotFound
from app.models.user import User
from app.schemas.credits import (
    BalanceOut,
    BoostIn,
    BoostOut,
    CreditPackageOut,
    LedgerAdjustmentIn,
    PurchaseIn,
    TransactionOut,
)
from app.services import boosts, credits
from app.services.audit import audit
from app.services.auth import Actor, get_actor, require_admin
from app.services.idempotency import (
    get_or_reserve_idempotency,
    optional_idempotency_key,
    store_idempotency_response,
)

router = APIRouter(prefix="/credits")


async def _assert_user_exists(db: AsyncSession, user_id: str) -> None:
    if (await db.execute(select(User.id).where(User.id == user_id))).scalar_one_or_none() is None:
        raise NotFound("User not found", user_id=user_id)


@router.get("/balance", response_model=BalanceOut)
async def get_balance(
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> BalanceOut:
    bal = await credits.get_balance(db, actor.user_id)
    await db.commit()
    return BalanceOut(
        user_id=bal.user_id,
        balance=bal.balance,
        total_earned=bal.total_earned,
        total_spent=bal.total_spent,
    )


@router.post("/purchase", response_model=TransactionOut, status_code=201)
async def purchase_credits(
    payload: PurchaseIn,
    request: Request,
    actor: Actor = Depends(get_actor),
    idempotency_key: str | None = Depends(optional_idempotency_key),
    db: AsyncSession = Depends(get_db),
) -> TransactionOut:
    if idempotency_key:
        existing = await get_or_reserve_idempotency(
            db=db,
            actor=actor,
            idempotency_key=idempotency_key,
            request_path=str(request.url.path),
            request_body=payload.model_dump(),
        )
        if existing:
            if not existing.response:
                raise HTTPException(status_code=409, detail="Request with this Idempotency-Key is in progress")
            # Safe retry: return stored response
            return TransactionOut(**existing.response)

    txn = await credits.purchase(
        db,
        user_id=actor.user_id,
        amount=payload.amount,
        payment_method=payload.payment_method,
    )
    resp = TransactionOut.model_validate(txn)

    if idempotency_key:
        await store_idempotency_response(
            db=db, actor=actor, idempotency_key=idempotency_key, response=resp.model_dump(mode="json")
        )

    await db.commit()
    return resp


@router.post("/boost", response_model=BoostOut)
async def boost_product(
    payload: BoostIn,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> BoostOut:
    result = await boosts.boost(db, user_id=actor.user_id, listing_id=payload.product_id, tier=payload.boost_type)
    await db.commit()
    return BoostOut(
        listing_id=result.listing_id,
        tier=result.tier,
        cost=result.cost,
        duration_days=result.duration_days,
        boosted_until=result.boosted_until,
        new_balance=result.new_balance,
        transaction_id=result.transaction_id,
    )


@router.get("/history", response_model=list[TransactionOut])
async def transaction_history(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> list[TransactionOut]:
    rows = await credits.history(db, actor.user_id, limit=limit, offset=offset)
    return [TransactionOut.model_validate(r) for r in rows]


@router.get("/packages", response_model=list[CreditPackageOut])
async def credit_packages() -> list[CreditPackageOut]:
    return [CreditPackageOut(**p) for p in credits.packages()]


@router.post("/earn", response_model=TransactionOut)
async def earn_credits(
    payload: LedgerAdjustmentIn,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> TransactionOut:
    await _assert_user_exists(db, payload.user_id)
    txn = await credits.earn(
        db, user_id=payload.user_id, amount=payload.amount, reason=payload.reason, actor_id=actor.user_id
    )
    await audit(
        db,
        actor_id=actor.user_id,
        action="credits.earn",
        target_type="user",
        target_id=payload.user_id,
        detail={"amount": payload.amount, "reason": payload.reason},
    )
    await db.commit()
    return TransactionOut.model_validate(txn)


@router.post("/refund", response_model=TransactionOut)
async def refund_credits(
    payload: LedgerAdjustmentIn,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> TransactionOut:
    await _assert_user_exists(db, payload.user_id)
    txn = await credits.refund(
        db, user_id=payload.user_id, amount=payload.amount, reason=payload.reason, actor_id=actor.user_id
    )
    await audit(
        db,
        actor_id=actor.user_id,
        action="credits.refund",
        target_type="user",
        target_id=payload.user_id,
        detail={"amount": payload.amount, "reason": payload.reason},
    )
    await db.commit()
    return TransactionOut.model_validate(txn)
