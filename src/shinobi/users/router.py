"""User profile router: /api/v1/users/me."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shinobi.auth.dependencies import get_current_user
from shinobi.auth.router import user_response
from shinobi.auth.schemas import ProfileUpdateRequest, UserResponse
from shinobi.database import get_session
from shinobi.db.models import User
from shinobi.users.service import update_profile

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("/me", response_model=UserResponse)
async def get_profile(
    user: User = Depends(get_current_user),
) -> UserResponse:
    """Get own full profile."""
    return user_response(user)


@router.patch("/me", response_model=UserResponse)
async def update_my_profile(
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Update username, email, languages or avatar."""
    user = await update_profile(
        db,
        user,
        username=body.username,
        email=str(body.email) if body.email is not None else None,
        native_language=body.native_language,
        learning_languages=body.learning_languages,
        avatar_url=body.avatar_url,
    )
    await db.commit()
    return user_response(user)
