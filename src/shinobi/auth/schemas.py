"""Request/response schemas for authentication and user endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

WALLET_PATTERN = r"^0x[0-9a-fA-F]{40}$"


# ---------------------------------------------------------------------------
# Wallet auth
# ---------------------------------------------------------------------------


class NonceRequest(BaseModel):
    wallet_address: str = Field(..., pattern=WALLET_PATTERN)


class NonceResponse(BaseModel):
    """Nonce and the exact message the wallet must sign."""

    nonce: str
    message: str
    expires_in: int


class VerifyRequest(BaseModel):
    wallet_address: str = Field(..., pattern=WALLET_PATTERN)
    signature: str = Field(..., min_length=130, max_length=140)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    is_new_user: bool = False
    user: UserResponse


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Full user profile response."""

    id: int
    wallet_address: str
    username: str | None = None
    email: str | None = None
    native_language: str | None = None
    learning_languages: list[str] = []
    avatar_url: str | None = None
    is_profile_complete: bool = False
    created_at: datetime | None = None
    last_login: datetime | None = None
    login_count: int = 0

    model_config = {"from_attributes": True}


class ProfileUpdateRequest(BaseModel):
    """Update user profile fields. Omitted fields are left unchanged."""

    username: str | None = Field(None, min_length=3, max_length=64)
    email: EmailStr | None = None
    native_language: str | None = Field(None, min_length=2, max_length=8)
    learning_languages: list[str] | None = Field(None, max_length=10)
    avatar_url: str | None = Field(None, max_length=512)
