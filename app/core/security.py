import uuid
from dataclasses import dataclass
from datetime import timedelta

import jwt

from app.core.clock import utcnow
from app.core.config import settings


ISSUER = "market-api"


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    role: str | None = None


def _secret() -> str:
    return settings.jwt_secret.get_secret_value()


def create_access_token(user_id: str, *, role: str | None = None, expires_in: timedelta = timedelta(hours=1)) -> str:
    # Issuing tokens belongs to the auth service; this is used by ops scripts and tests.
    now = utcnow()
    payload = {
        "iss": ISSUER,
        "sub": user_id,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
        "jti": uuid.uuid4().hex,
    }
    if role:
        payload["role"] = role
    return jwt.encode(payload, _secret(), algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> TokenClaims:
    """
    Verify signature, issuer and expiry.
    Raises jwt.PyJWTError subclasses on any failure.
    """
    payload = jwt.decode(
        token,
        _secret(),
        algorithms=[settings.jwt_algorithm],
        issuer=ISSUER,
        options={"require": ["sub", "exp"]},
    )
    return TokenClaims(user_id=str(payload["sub"]), role=payload.get("role"))
