"""ORM models for users, challenges, participation, ledger mirror and notifications.

Column types stay portable (JSON rather than JSONB) so the same metadata
can be created on PostgreSQL in production and SQLite in tests.
"""

from __future__ import annotations

import datetime as dt
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shinobi.db.base import Base, BigIntId

# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Wallet-identified learner."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(String(42), unique=True, nullable=False)
    username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    native_language: Mapped[str | None] = mapped_column(String(8), nullable=True)
    learning_languages: Mapped[list[str]] = mapped_column(JSON, default=list)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_banned: Mapped[bool] = mapped_column(Boolean, default=False, server_default="0")
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    login_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    participations: Mapped[list[UserChallenge]] = relationship("UserChallenge", back_populates="user")


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------


class Challenge(Base):
    """Challenge template: stake, yield and daily practice terms."""

    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    language_code: Mapped[str] = mapped_column(String(8), nullable=False)
    proficiency_level: Mapped[str] = mapped_column(String(16), nullable=False)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    daily_requirement: Mapped[int] = mapped_column(Integer, nullable=False)
    stake_amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    yield_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    is_hardcore: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    max_participants: Mapped[int | None] = mapped_column(Integer, nullable=True)
    invite_code: Mapped[str | None] = mapped_column(String(16), nullable=True, unique=True)
    creator_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    contract_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    contract_chain: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    creator: Mapped[User] = relationship("User")
    participants: Mapped[list[UserChallenge]] = relationship("UserChallenge", back_populates="challenge")


class UserChallenge(Base):
    """One user's participation in one challenge."""

    __tablename__ = "user_challenges"
    __table_args__ = (
        UniqueConstraint("user_id", "challenge_id", name="uq_user_challenges_user_challenge"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    challenge_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    staked_amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    stake_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    current_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    progress_percentage: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="ACTIVE", nullable=False, index=True)
    completion_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)

    user: Mapped[User] = relationship("User", back_populates="participations")
    challenge: Mapped[Challenge] = relationship("Challenge", back_populates="participants")
    daily_progress: Mapped[list[DailyProgress]] = relationship(
        "DailyProgress", back_populates="user_challenge", order_by="DailyProgress.date.desc()"
    )


class DailyProgress(Base):
    """Practice minutes for one participation on one calendar day."""

    __tablename__ = "daily_progress"
    __table_args__ = (
        UniqueConstraint("user_challenge_id", "date", name="uq_daily_progress_user_challenge_date"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_challenge_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("user_challenges.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    minutes_practiced: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    user_challenge: Mapped[UserChallenge] = relationship("UserChallenge", back_populates="daily_progress")


# ---------------------------------------------------------------------------
# Ledger mirror
# ---------------------------------------------------------------------------


class Transaction(Base):
    """Append-only mirror of on-chain events. Only ``status`` is ever updated."""

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user_challenge_id: Mapped[int | None] = mapped_column(
        BigIntId, ForeignKey("user_challenges.id", ondelete="SET NULL"), nullable=True
    )
    transaction_type: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    """Persisted user notifications."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------


class Achievement(Base):
    """Count-based achievement definition."""

    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    achievement_type: Mapped[str] = mapped_column(String(32), nullable=False)
    threshold: Mapped[int] = mapped_column(Integer, nullable=False)


class UserAchievement(Base):
    """Achievement earned by a user."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_user_achievement"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    achievement_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False
    )
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
