"""FastAPI authentication dependencies."""

from __future__ import annotations

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from shinobi.auth.jwt import decode_access_token
from shinobi.auth.service import get_user_by_id
from shinobi.database import get_session
from shinobi.db.models import User
from shinobi.errors import Forbidden, Unauthorized

_bearer = HTTPBearer(auto_error=False)


async def _resolve_user(db: AsyncSession, token: str) -> User:
    claims = decode_access_token(token)
    user = await get_user_by_id(db, claims.user_id)
    if user is None:
        raise Unauthorized("User not found")
    if claims.wallet_address != user.wallet_address:
        raise Unauthorized("Token does not match account")
    if user.is_banned:
        raise Forbidden("Account is banned")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Extract and verify the bearer JWT, return the User. 401 if missing or invalid."""
    if credentials is None:
        raise Unauthorized("Not authenticated")
    return await _resolve_user(db, credentials.credentials)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User | None:
    """Like get_current_user, but anonymous callers get None instead of 401."""
    if credentials is None:
        return None
    return await _resolve_user(db, credentials.credentials)
