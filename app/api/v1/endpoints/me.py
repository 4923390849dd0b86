from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.models.user import User
from app.schemas.me import MeOut
from app.services import credits
from app.services.auth import Actor, get_actor

router = APIRouter()


@router.get("/me", response_model=MeOut)
async def me(actor: Actor = Depends(get_actor), db: AsyncSession = Depends(get_db)) -> MeOut:
    user = (await db.execute(select(User).where(User.id == actor.user_id))).scalar_one()
    bal = await credits.get_balance(db, actor.user_id)
    await db.commit()
    return MeOut(
        user_id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        role=actor.role,
        credits=bal.balance,
    )
