"""
Credit ledger.

Balances are only ever changed by single conditional UPDATE statements, so a
sufficiency check and the decrement it guards can never be split by a
concurrent request. Every change appends a CreditTransaction and stages an
outbox event in the same transaction; callers own the commit.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.config import settings
from app.core.db import dialect_name
from app.core.errors import InsufficientBalance, ValidationError
from app.core.ids import gen_id
from app.models.credit import CreditBalance, CreditTransaction
from app.services.outbox import emit


log = logging.getLogger(__name__)

PAYMENT_METHODS = ("stripe", "paypal", "mobile_money")

CREDIT_PACKAGES: list[dict] = [
    {"id": "starter", "name": "Pack Starter", "credits": 10, "price": 10, "bonus": 0},
    {"id": "popular", "name": "Pack Populaire", "credits": 25, "price": 22, "bonus": 3},
    {"id": "pro", "name": "Pack Pro", "credits": 50, "price": 40, "bonus": 10},
    {"id": "enterprise", "name": "Pack Enterprise", "credits": 100, "price": 75, "bonus": 25},
]


@dataclass(frozen=True)
class Balance:
    user_id: str
    balance: int
    total_earned: int
    total_spent: int


def packages() -> list[dict]:
    return [dict(p) for p in CREDIT_PACKAGES]


def _require_positive(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValidationError("Amount must be a positive integer", amount=amount)


async def ensure_balance_row(db: AsyncSession, user_id: str) -> None:
    # insert-or-ignore keeps lazy creation safe under concurrent first access
    insert = postgresql.insert if dialect_name(db) == "postgresql" else sqlite.insert
    stmt = (
        insert(CreditBalance)
        .values(id=gen_id("crd"), user_id=user_id, balance=0, total_earned=0, total_spent=0)
        .on_conflict_do_nothing(index_elements=["user_id"])
    )
    await db.execute(stmt)


async def get_balance(db: AsyncSession, user_id: str) -> Balance:
    await ensure_balance_row(db, user_id)
    stmt = (
        select(CreditBalance)
        .where(CreditBalance.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    row = (await db.execute(stmt)).scalar_one()
    return Balance(
        user_id=user_id,
        balance=row.balance,
        total_earned=row.total_earned,
        total_spent=row.total_spent,
    )


async def _increment(db: AsyncSession, user_id: str, amount: int) -> int:
    await ensure_balance_row(db, user_id)
    stmt = (
        update(CreditBalance)
        .where(CreditBalance.user_id == user_id)
        .values(
            balance=CreditBalance.balance + amount,
            total_earned=CreditBalance.total_earned + amount,
        )
        .returning(CreditBalance.balance)
        .execution_options(synchronize_session=False)
    )
    return int((await db.execute(stmt)).scalar_one())


async def try_decrement(db: AsyncSession, user_id: str, amount: int, *, count_as_spent: bool = True) -> int | None:
    """
    Decrement by `amount` only where balance >= amount.
    Returns the new balance, or None when nothing was decremented.
    """
    _require_positive(amount)
    await ensure_balance_row(db, user_id)

    values = {"balance": CreditBalance.balance - amount}
    if count_as_spent:
        values["total_spent"] = CreditBalance.total_spent + amount

    stmt = (
        update(CreditBalance)
        .where(CreditBalance.user_id == user_id, CreditBalance.balance >= amount)
        .values(**values)
        .returning(CreditBalance.balance)
        .execution_options(synchronize_session=False)
    )
    new_balance = (await db.execute(stmt)).scalar_one_or_none()
    return None if new_balance is None else int(new_balance)


async def decrement(db: AsyncSession, user_id: str, amount: int, *, count_as_spent: bool = True) -> int:
    new_balance = await try_decrement(db, user_id, amount, count_as_spent=count_as_spent)
    if new_balance is None:
        current = await get_balance(db, user_id)
        raise InsufficientBalance(
            f"Insufficient balance: {amount} credits required, {current.balance} available",
            required=amount,
            available=current.balance,
        )
    return new_balance


def _record(
    db: AsyncSession,
    *,
    user_id: str,
    type_: str,
    amount: int,
    balance_after: int,
    description: str,
    reference: str | None = None,
) -> CreditTransaction:
    txn = CreditTransaction(
        id=gen_id("txn"),
        user_id=user_id,
        type=type_,
        amount=amount,
        balance_after=balance_after,
        description=description,
        reference=reference,
        created_at=utcnow(),
    )
    db.add(txn)
    return txn


async def purchase(db: AsyncSession, *, user_id: str, amount: int, payment_method: str) -> CreditTransaction:
    _require_positive(amount)
    if amount > settings.credit_purchase_max:
        raise ValidationError(
            f"Amount exceeds the maximum of {settings.credit_purchase_max}",
            amount=amount,
            maximum=settings.credit_purchase_max,
        )
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError("Unsupported payment method", payment_method=payment_method)

    # payment capture happens in the gateway; 1 currency unit buys 1 credit
    log.info("purchase: user=%s amount=%d via %s", user_id, amount, payment_method)
    new_balance = await _increment(db, user_id, amount)

    txn = _record(
        db,
        user_id=user_id,
        type_="purchase",
        amount=amount,
        balance_after=new_balance,
        description=f"Purchase of {amount} credits via {payment_method}",
        reference=payment_method,
    )
    emit(
        db,
        aggregate_type="credits",
        aggregate_id=user_id,
        event_type="credits.purchased",
        payload={
            "user_id": user_id,
            "transaction_id": txn.id,
            "amount": amount,
            "new_balance": new_balance,
            "payment_method": payment_method,
        },
        actor_id=user_id,
    )
    await db.flush()
    return txn


async def earn(
    db: AsyncSession,
    *,
    user_id: str,
    amount: int,
    reason: str,
    actor_id: str | None = None,
) -> CreditTransaction:
    _require_positive(amount)
    new_balance = await _increment(db, user_id, amount)

    txn = _record(
        db,
        user_id=user_id,
        type_="earn",
        amount=amount,
        balance_after=new_balance,
        description=f"Earned: {reason}",
    )
    emit(
        db,
        aggregate_type="credits",
        aggregate_id=user_id,
        event_type="credits.earned",
        payload={"user_id": user_id, "transaction_id": txn.id, "amount": amount, "reason": reason},
        actor_id=actor_id,
    )
    await db.flush()
    return txn


async def refund(
    db: AsyncSession,
    *,
    user_id: str,
    amount: int,
    reason: str,
    actor_id: str | None = None,
) -> CreditTransaction:
    new_balance = await decrement(db, user_id, amount, count_as_spent=False)

    txn = _record(
        db,
        user_id=user_id,
        type_="refund",
        amount=-amount,
        balance_after=new_balance,
        description=f"Refund: {reason}",
    )
    emit(
        db,
        aggregate_type="credits",
        aggregate_id=user_id,
        event_type="credits.refunded",
        payload={"user_id": user_id, "transaction_id": txn.id, "amount": amount, "reason": reason},
        actor_id=actor_id,
    )
    await db.flush()
    return txn


async def history(db: AsyncSession, user_id: str, *, limit: int = 20, offset: int = 0) -> list[CreditTransaction]:
    stmt = (
        select(CreditTransaction)
        .where(CreditTransaction.user_id == user_id)
        .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
        .limit(min(limit, 100))
        .offset(offset)
    )
    return list((await db.execute(stmt)).scalars().all())
