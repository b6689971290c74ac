"""In-app notifications.

Rows are stored per user and, when Redis is up, pushed on
``notifications:user:{id}`` for connected clients. Domain code calls
``notify``, which uses a savepoint and swallows failures so that a lost
notification never rolls back the transition that produced it.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import ColumnElement, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shinobi.db.models import Notification
from shinobi.redis_client import get_optional_redis

logger = logging.getLogger(__name__)

CHALLENGE_CREATED = "CHALLENGE_CREATED"
CHALLENGE_JOINED = "CHALLENGE_JOINED"
CHALLENGE_COMPLETED = "CHALLENGE_COMPLETED"
CHALLENGE_FAILED = "CHALLENGE_FAILED"
CHALLENGE_WITHDRAWN = "CHALLENGE_WITHDRAWN"
CHALLENGE_REMINDER = "CHALLENGE_REMINDER"
STREAK_WARNING = "STREAK_WARNING"
ACHIEVEMENT_EARNED = "ACHIEVEMENT_EARNED"

NOTIFICATION_TYPES = frozenset(
    {
        CHALLENGE_CREATED,
        CHALLENGE_JOINED,
        CHALLENGE_COMPLETED,
        CHALLENGE_FAILED,
        CHALLENGE_WITHDRAWN,
        CHALLENGE_REMINDER,
        STREAK_WARNING,
        ACHIEVEMENT_EARNED,
    }
)


def channel_for(user_id: int) -> str:
    return f"notifications:user:{user_id}"


def push_payload(notification: Notification) -> str:
    return json.dumps(
        {
            "type": "notification",
            "notification": {
                "id": str(notification.id),
                "type": notification.type,
                "title": notification.title,
                "message": notification.message,
                "timestamp": notification.created_at.isoformat() if notification.created_at else None,
                "read": notification.read,
            },
        }
    )


async def create_notification(
    db: AsyncSession,
    user_id: int,
    type_: str,
    title: str,
    message: str,
    redis: Any | None = None,
) -> Notification:
    """Insert an unread notification; push it if ``redis`` is given.

    Raises:
        ValueError: ``type_`` is not a known notification type.
    """
    if type_ not in NOTIFICATION_TYPES:
        raise ValueError(f"Invalid notification type: {type_}")

    notification = Notification(
        user_id=user_id,
        type=type_,
        title=title,
        message=message,
        read=False,
        created_at=datetime.now(timezone.utc),
    )
    db.add(notification)
    await db.flush()

    if redis is not None:
        try:
            await redis.publish(channel_for(user_id), push_payload(notification))
        except Exception:
            logger.warning("Push for notification %s failed", notification.id, exc_info=True)
    return notification


async def notify(
    db: AsyncSession,
    user_id: int,
    type_: str,
    title: str,
    message: str,
    redis: Any | None = None,
) -> Notification | None:
    """``create_notification`` inside a savepoint; None instead of raising."""
    try:
        async with db.begin_nested():
            return await create_notification(
                db, user_id, type_, title, message, redis=redis if redis is not None else get_optional_redis()
            )
    except Exception:
        logger.warning("Notification %s for user %s not persisted", type_, user_id, exc_info=True)
        return None


def _inbox(user_id: int, *extra: ColumnElement[bool]) -> list[ColumnElement[bool]]:
    return [Notification.user_id == user_id, *extra]


async def get_notifications(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Notification], int]:
    """One page of the inbox, newest first, and the inbox size."""
    where = _inbox(user_id)
    total = (await db.execute(select(func.count(Notification.id)).where(*where))).scalar_one()
    rows = await db.execute(
        select(Notification)
        .where(*where)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(per_page)
        .offset((page - 1) * per_page)
    )
    return list(rows.scalars()), total


async def _mark_read(db: AsyncSession, where: list[ColumnElement[bool]]) -> int:
    result = await db.execute(update(Notification).where(*where).values(read=True))
    await db.flush()
    return result.rowcount


async def mark_as_read(db: AsyncSession, user_id: int, notification_id: int) -> bool:
    """False when the notification does not exist or belongs to someone else."""
    return await _mark_read(db, _inbox(user_id, Notification.id == notification_id)) > 0


async def mark_all_as_read(db: AsyncSession, user_id: int) -> int:
    return await _mark_read(db, _inbox(user_id, Notification.read.is_(False)))


async def get_unread_count(db: AsyncSession, user_id: int) -> int:
    query = select(func.count(Notification.id)).where(*_inbox(user_id, Notification.read.is_(False)))
    return (await db.execute(query)).scalar_one()
