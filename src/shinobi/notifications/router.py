"""Inbox endpoints under /api/v1/notifications."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from shinobi.auth.dependencies import get_current_user
from shinobi.database import get_session
from shinobi.db.models import Notification, User
from shinobi.errors import NotFound
from shinobi.notifications import service
from shinobi.notifications.schemas import (
    MarkReadResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


def _to_response(n: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=str(n.id), type=n.type, title=n.title, message=n.message, timestamp=n.created_at, read=n.read
    )


@router.get("", response_model=NotificationListResponse)
async def inbox(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> NotificationListResponse:
    rows, total = await service.get_notifications(db, user.id, page, per_page)
    return NotificationListResponse(
        notifications=[_to_response(n) for n in rows], total=total, page=page, per_page=per_page
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UnreadCountResponse:
    return UnreadCountResponse(unread_count=await service.get_unread_count(db, user.id))


@router.post("/read-all", response_model=MarkReadResponse)
async def read_all(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> MarkReadResponse:
    updated = await service.mark_all_as_read(db, user.id)
    await db.commit()
    return MarkReadResponse(updated=updated)


@router.post("/{notification_id}/read", response_model=MarkReadResponse)
async def read_one(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> MarkReadResponse:
    if not await service.mark_as_read(db, user.id, notification_id):
        raise NotFound("Notification not found")
    await db.commit()
    return MarkReadResponse(updated=1)
