"""Invite codes for capacity-limited (private) challenges.

Codes are 8-character alphanumeric (A-Z, 0-9), generated server-side with a
cryptographic random source. Creators may supply their own code instead.
"""

from __future__ import annotations

import secrets
import string

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shinobi.db.models import Challenge

INVITE_CHARSET = string.ascii_uppercase + string.digits
INVITE_LENGTH = 8


def generate_invite_code() -> str:
    return "".join(secrets.choice(INVITE_CHARSET) for _ in range(INVITE_LENGTH))


def normalize_invite_code(code: str) -> str:
    """Uppercase and strip, for case-insensitive comparison."""
    return code.strip().upper()


async def generate_unique_invite_code(db: AsyncSession) -> str:
    """Generate a code no existing challenge uses."""
    for _ in range(10):
        code = generate_invite_code()
        existing = await db.execute(select(Challenge.id).where(Challenge.invite_code == code))
        if existing.scalar_one_or_none() is None:
            return code
    raise RuntimeError("Failed to generate unique invite code after 10 attempts")
