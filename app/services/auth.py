from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.security import decode_access_token
from app.models.user import User

bearer_scheme = HTTPBearer(auto_error=False)

MODERATION_ROLES = ("ADMIN", "MODERATOR")


@dataclass(frozen=True)
class Actor:
    user_id: str
    email: str
    role: str  # "USER" | "VIP" | "PRO" | "MODERATOR" | "ADMIN"

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"


async def get_actor(
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    if not credentials or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Missing bearer token")

    try:
        claims = decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    # role always comes from the user row, never from the token
    stmt = select(User).where(User.id == claims.user_id)
    user = (await db.execute(stmt)).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=423, detail="Account locked")

    return Actor(user_id=user.id, email=user.email, role=user.role)


def require_roles(*roles: str):
    def _dependency(actor: Actor = Depends(get_actor)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return actor

    return _dependency


require_admin = require_roles("ADMIN")
require_moderator = require_roles(*MODERATION_ROLES)
