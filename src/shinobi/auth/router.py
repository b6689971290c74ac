"""Authentication router: wallet sign-in under /api/v1/auth."""

from __future__ import annotations

import secrets

import structlog
from fastapi import APIRouter, Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from shinobi.auth.ethereum import build_sign_in_message, verify_wallet_signature
from shinobi.auth.jwt import create_access_token
from shinobi.auth.schemas import (
    NonceRequest,
    NonceResponse,
    TokenResponse,
    UserResponse,
    VerifyRequest,
)
from shinobi.auth.service import get_or_create_user, is_profile_complete, record_login
from shinobi.config import get_settings
from shinobi.database import get_session
from shinobi.db.models import User
from shinobi.errors import Unauthorized
from shinobi.redis_client import get_redis

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        wallet_address=user.wallet_address,
        username=user.username,
        email=user.email,
        native_language=user.native_language,
        learning_languages=user.learning_languages or [],
        avatar_url=user.avatar_url,
        is_profile_complete=is_profile_complete(user),
        created_at=user.created_at,
        last_login=user.last_login,
        login_count=user.login_count,
    )


def _nonce_key(wallet_address: str) -> str:
    return f"auth:nonce:{wallet_address.lower()}"


@router.post("/nonce", response_model=NonceResponse)
async def nonce(
    body: NonceRequest,
    redis: Redis = Depends(get_redis),  # type: ignore[assignment]
) -> NonceResponse:
    """Issue a one-time nonce and the message the wallet must sign."""
    settings = get_settings()
    value = secrets.token_hex(16)
    await redis.set(_nonce_key(body.wallet_address), value, ex=settings.wallet_nonce_expire_seconds)
    return NonceResponse(
        nonce=value,
        message=build_sign_in_message(body.wallet_address, value),
        expires_in=settings.wallet_nonce_expire_seconds,
    )


@router.post("/verify", response_model=TokenResponse)
async def verify(
    body: VerifyRequest,
    redis: Redis = Depends(get_redis),  # type: ignore[assignment]
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    """Verify a wallet signature over the stored nonce and issue an access token."""
    key = _nonce_key(body.wallet_address)
    stored = await redis.get(key)
    if stored is None:
        raise Unauthorized("Authentication nonce not found or expired")
    # One-time use
    await redis.delete(key)

    message = build_sign_in_message(body.wallet_address, stored)
    if not verify_wallet_signature(body.wallet_address, message, body.signature):
        logger.info("wallet_signature_rejected", wallet_address=body.wallet_address.lower())
        raise Unauthorized("Invalid signature")

    user, created = await get_or_create_user(db, body.wallet_address)
    record_login(user)
    await db.commit()

    settings = get_settings()
    return TokenResponse(
        access_token=create_access_token(user.id, user.wallet_address),
        token_type="bearer",
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        is_new_user=created,
        user=user_response(user),
    )
