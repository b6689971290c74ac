"""User profile business logic."""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shinobi.db.models import User
from shinobi.errors import InvalidState


async def update_profile(
    db: AsyncSession,
    user: User,
    username: str | None = None,
    email: str | None = None,
    native_language: str | None = None,
    learning_languages: list[str] | None = None,
    avatar_url: str | None = None,
) -> User:
    """
    Update user profile fields. ``None`` leaves a field unchanged.

    Raises:
        InvalidState: If the username is already taken (case-insensitive).
    """
    if username is not None:
        result = await db.execute(
            select(User.id)
            .where(func.lower(User.username) == username.lower())
            .where(User.id != user.id)
        )
        if result.first() is not None:
            raise InvalidState("Username already taken")
        user.username = username

    if email is not None:
        user.email = email.lower().strip()
    if native_language is not None:
        user.native_language = native_language
    if learning_languages is not None:
        # Order-preserving de-duplication
        user.learning_languages = list(dict.fromkeys(code.lower() for code in learning_languages))
    if avatar_url is not None:
        user.avatar_url = avatar_url

    await db.flush()
    return user
