import hashlib
import json
from fastapi import Header, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.idempotency import IdempotencyKey
from app.services.auth import Actor


def _hash_request(path: str, body: dict) -> str:
    # Stable hash to detect conflicts (same idempotency key but different request)
    raw = json.dumps({"path": path, "body": body}, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")
    return "sha256:" + hashlib.sha256(raw).hexdigest()


async def optional_idempotency_key(idempotency_key: str | None = Header(default=None)) -> str | None:
    if idempotency_key is not None and len(idempotency_key) > 200:
        raise HTTPException(status_code=400, detail="Idempotency-Key too long")
    return idempotency_key or None


async def get_or_reserve_idempotency(
    *,
    db: AsyncSession,
    actor: Actor,
    idempotency_key: str,
    request_path: str,
    request_body: dict,
) -> IdempotencyKey | None:
    """
    Returns the stored record when this key was already used by the same user
    for the same request; the caller replays its response.
    Otherwise reserves the key inside the current transaction and returns None.
    """
    req_hash = _hash_request(request_path, request_body)

    stmt = select(IdempotencyKey).where(
        IdempotencyKey.user_id == actor.user_id,
        IdempotencyKey.key == idempotency_key,
    )
    existing = (await db.execute(stmt)).scalar_one_or_none()
    if existing:
        if existing.request_hash != req_hash:
            raise HTTPException(status_code=409, detail="Idempotency-Key reuse with different request")
        return existing

    await reserve_idempotency_key(db, actor=actor, idempotency_key=idempotency_key, request_hash=req_hash)
    return None


async def reserve_idempotency_key(db: AsyncSession, *, actor: Actor, idempotency_key: str, request_hash: str) -> None:
    # Reserve by inserting an empty response row
    db.add(IdempotencyKey(
        user_id=actor.user_id,
        key=idempotency_key,
        request_hash=request_hash,
        response={},
    ))
    # Flush so it becomes visible in this transaction (unique constraint enforced)
    try:
        await db.flush()
    except IntegrityError:
        # a concurrent first use of the same key won the insert
        await db.rollback()
        raise HTTPException(status_code=409, detail="Request with this Idempotency-Key is in progress") from None


async def store_idempotency_response(
    *,
    db: AsyncSession,
    actor: Actor,
    idempotency_key: str,
    response: dict,
) -> None:
    stmt = select(IdempotencyKey).where(
        IdempotencyKey.user_id == actor.user_id,
        IdempotencyKey.key == idempotency_key,
    )
    row = (await db.execute(stmt)).scalar_one()
    row.response = response
    await db.flush()
