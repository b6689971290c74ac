"""Bearer tokens for wallet sessions (PyJWT, HS256 by default)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from shinobi.config import get_settings
from shinobi.errors import Unauthorized

ACCESS = "access"


@dataclass(frozen=True)
class AccessClaims:
    user_id: int
    wallet_address: str
    expires_at: datetime


def create_access_token(user_id: int, wallet_address: str, now: datetime | None = None) -> str:
    settings = get_settings()
    now = now or datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "wallet": wallet_address.lower(),
        "typ": ACCESS,
        "iss": settings.jwt_issuer,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_access_token_expire_minutes),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> AccessClaims:
    """Validate signature, issuer, expiry and token kind.

    Raises:
        Unauthorized: any of the checks fails.
    """
    settings = get_settings()
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options={"require": ["sub", "exp", "iss"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise Unauthorized("Token has expired") from e
    except jwt.InvalidTokenError as e:
        raise Unauthorized("Invalid token") from e

    if claims.get("typ") != ACCESS:
        raise Unauthorized("Not an access token")
    try:
        user_id = int(claims["sub"])
    except ValueError as e:
        raise Unauthorized("Invalid token subject") from e
    return AccessClaims(
        user_id=user_id,
        wallet_address=claims.get("wallet", ""),
        expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
    )
