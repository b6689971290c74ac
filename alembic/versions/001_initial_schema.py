"""Initial schema: users, challenges, participation, ledger mirror, inbox, achievements.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("wallet_address", sa.String(42), nullable=False),
        sa.Column("username", sa.String(64), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("native_language", sa.String(8), nullable=True),
        sa.Column("learning_languages", sa.JSON(), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("is_banned", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column("login_count", sa.Integer(), server_default="0", nullable=False),
    )
    op.create_index("ix_users_wallet_address", "users", ["wallet_address"], unique=True)
    op.create_index("ix_users_username", "users", ["username"], unique=True, postgresql_where=sa.text("username IS NOT NULL"))

    op.create_table(
        "challenges",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), server_default="", nullable=False),
        sa.Column("language_code", sa.String(8), nullable=False),
        sa.Column("proficiency_level", sa.String(16), nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=False),
        sa.Column("daily_requirement", sa.Integer(), nullable=False),
        sa.Column("stake_amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("yield_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("is_hardcore", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("invite_code", sa.String(16), nullable=True),
        sa.Column("creator_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("contract_address", sa.String(42), nullable=True),
        sa.Column("contract_chain", sa.String(32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index("ix_challenges_invite_code", "challenges", ["invite_code"], unique=True)
    op.create_index("ix_challenges_language_level", "challenges", ["language_code", "proficiency_level"])
    op.execute(
        "ALTER TABLE challenges ADD CONSTRAINT ck_challenges_duration CHECK (duration_days BETWEEN 1 AND 365)"
    )
    op.execute(
        "ALTER TABLE challenges ADD CONSTRAINT ck_challenges_daily_requirement "
        "CHECK (daily_requirement BETWEEN 5 AND 120)"
    )

    op.create_table(
        "user_challenges",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "challenge_id", sa.BigInteger(), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("staked_amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("stake_tx_hash", sa.String(66), nullable=True),
        sa.Column("current_streak", sa.Integer(), server_default="0", nullable=False),
        sa.Column("longest_streak", sa.Integer(), server_default="0", nullable=False),
        sa.Column("progress_percentage", sa.Integer(), server_default="0", nullable=False),
        sa.Column("status", sa.String(16), server_default="ACTIVE", nullable=False),
        sa.Column("completion_tx_hash", sa.String(66), nullable=True),
        sa.UniqueConstraint("user_id", "challenge_id", name="uq_user_challenges_user_challenge"),
    )
    op.create_index("ix_user_challenges_end_date", "user_challenges", ["end_date"])
    op.create_index("ix_user_challenges_status", "user_challenges", ["status"])
    op.execute(
        "ALTER TABLE user_challenges ADD CONSTRAINT ck_user_challenges_status "
        "CHECK (status IN ('ACTIVE', 'COMPLETED', 'FAILED', 'WITHDRAWN'))"
    )

    op.create_table(
        "daily_progress",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_challenge_id",
            sa.BigInteger(),
            sa.ForeignKey("user_challenges.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("minutes_practiced", sa.Integer(), server_default="0", nullable=False),
        sa.Column("completed", sa.Boolean(), server_default="false", nullable=False),
        sa.UniqueConstraint("user_challenge_id", "date", name="uq_daily_progress_user_challenge_date"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "user_challenge_id",
            sa.BigInteger(),
            sa.ForeignKey("user_challenges.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("transaction_type", sa.String(32), nullable=False),
        sa.Column("amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("tx_hash", sa.String(66), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"])
    op.create_index("ix_transactions_user_challenge_id", "transactions", ["user_challenge_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("read", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index("ix_notifications_user_created", "notifications", ["user_id", sa.text("created_at DESC")])
    op.create_index(
        "ix_notifications_user_unread",
        "notifications",
        ["user_id"],
        postgresql_where=sa.text("read = false"),
    )

    op.create_table(
        "achievements",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("slug", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("achievement_type", sa.String(32), nullable=False),
        sa.Column("threshold", sa.Integer(), nullable=False),
    )

    op.create_table(
        "user_achievements",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "achievement_id", sa.BigInteger(), sa.ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("earned_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_user_achievement"),
    )


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table("user_achievements")
    op.drop_table("achievements")
    op.drop_table("notifications")
    op.drop_table("transactions")
    op.drop_table("daily_progress")
    op.drop_table("user_challenges")
    op.drop_table("challenges")
    op.drop_table("users")
