"""
Authentication business logic.

Users are identified by wallet address, stored lower-cased.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select

from shinobi.db.models import User

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Fetch a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_wallet(db: AsyncSession, wallet_address: str) -> User | None:
    result = await db.execute(select(User).where(User.wallet_address == wallet_address.lower()))
    return result.scalar_one_or_none()


async def get_or_create_user(db: AsyncSession, wallet_address: str) -> tuple[User, bool]:
    """
    Get existing user or create a new one for wallet auth.

    Returns:
        Tuple of (user, created) where created is True if a new user was made.
    """
    address = wallet_address.lower()
    user = await get_user_by_wallet(db, address)
    if user is not None:
        return user, False

    now = datetime.now(timezone.utc)
    user = User(
        wallet_address=address,
        username=f"user_{address[:6]}",
        learning_languages=[],
        created_at=now,
        last_login=now,
        login_count=0,
    )
    db.add(user)
    await db.flush()
    logger.info("user_created", user_id=user.id, wallet_address=address)
    return user, True


def record_login(user: User) -> None:
    user.last_login = datetime.now(timezone.utc)
    user.login_count = (user.login_count or 0) + 1


def is_profile_complete(user: User) -> bool:
    return bool(user.username and user.email and user.native_language)
