"""Shared test fixtures.

Tests run against in-memory SQLite (aiosqlite) and an in-memory ledger; no
PostgreSQL, Redis or RPC node is needed.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from fakes import ADMIN_KEY, ALICE, BOB, STAKING_CONTRACT, USDC_CONTRACT, FakeLedger, FakeRedis, Sleeper

os.environ.update(
    {
        "SHINOBI_DATABASE_URL": "sqlite+aiosqlite://",
        "SHINOBI_STAKING_CONTRACT_ADDRESS": STAKING_CONTRACT,
        "SHINOBI_USDC_CONTRACT_ADDRESS": USDC_CONTRACT,
        "SHINOBI_STAKING_ADMIN_PRIVATE_KEY": ADMIN_KEY,
        "SHINOBI_JWT_SECRET": "test-secret-key-with-enough-length-for-hs256",
        "SHINOBI_LOG_FORMAT": "console",
        "SHINOBI_OPENROUTER_API_KEY": "",
    }
)

from shinobi.auth.jwt import create_access_token  # noqa: E402
from shinobi.auth.service import get_or_create_user  # noqa: E402
from shinobi.chain.ledger import to_base_units  # noqa: E402
from shinobi.chain.reward_distributor import RewardDistributor  # noqa: E402
from shinobi.challenges.lifecycle_service import join_challenge  # noqa: E402
from shinobi.config import get_settings  # noqa: E402
from shinobi.database import close_db, get_engine, get_session_factory, init_db  # noqa: E402
from shinobi.db.base import Base  # noqa: E402
from shinobi.db.models import Challenge, User, UserChallenge  # noqa: E402

get_settings.cache_clear()


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory schema per test."""
    await init_db("sqlite+aiosqlite://")
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with get_session_factory()() as session:
        yield session
    await close_db()


@pytest_asyncio.fixture
async def alice(db_session: AsyncSession) -> User:
    user, _ = await get_or_create_user(db_session, ALICE)
    user.email = "alice@example.com"
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def bob(db_session: AsyncSession) -> User:
    user, _ = await get_or_create_user(db_session, BOB)
    await db_session.commit()
    return user


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def sleeper() -> Sleeper:
    return Sleeper()


@pytest.fixture
def distributor(ledger: FakeLedger, sleeper: Sleeper) -> RewardDistributor:
    return RewardDistributor.from_settings(ledger, get_settings(), sleep=sleeper)


@pytest.fixture
def make_challenge(db_session: AsyncSession, alice: User) -> Callable[..., Awaitable[Challenge]]:
    """Insert a challenge owned by alice; keyword overrides any column."""

    async def _make(**overrides: Any) -> Challenge:  # noqa: ANN401
        values: dict[str, Any] = {
            "title": "Daily Japanese",
            "description": "Practice every day",
            "language_code": "ja",
            "proficiency_level": "BEGINNER",
            "duration_days": 10,
            "daily_requirement": 20,
            "stake_amount": Decimal("100"),
            "yield_percentage": Decimal("5"),
            "is_hardcore": False,
            "creator_id": alice.id,
            "is_active": True,
            "created_at": datetime.now(timezone.utc),
        }
        values.update(overrides)
        challenge = Challenge(**values)
        db_session.add(challenge)
        await db_session.commit()
        return challenge

    return _make


@pytest.fixture
def join(
    db_session: AsyncSession, ledger: FakeLedger
) -> Callable[..., Awaitable[UserChallenge]]:
    """Stake on the fake ledger and join, committing the result."""
    counter = iter(range(1, 10_000))

    async def _join(user: User, challenge: Challenge, now: datetime | None = None, **kwargs: Any) -> UserChallenge:  # noqa: ANN401
        tx_hash = "0x" + f"{0xBEEF0000 + next(counter):064x}"
        ledger.add_stake(tx_hash, user.wallet_address, to_base_units(challenge.stake_amount))
        participation = await join_challenge(db_session, ledger, user, challenge.id, tx_hash, now=now, **kwargs)
        await db_session.commit()
        return participation

    return _join


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.wallet_address)}"}


@pytest.fixture
def headers_for() -> Callable[[User], dict[str, str]]:
    return auth_headers


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    ledger: FakeLedger,
    distributor: RewardDistributor,
    fake_redis: FakeRedis,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with the ledger and Redis swapped out.

    ASGITransport does not run the lifespan; ``db_session`` has already
    initialised the database.
    """
    from shinobi.dependencies import get_distributor, get_ledger
    from shinobi.main import create_app
    from shinobi.redis_client import get_redis

    app = create_app()
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_distributor] = lambda: distributor
    app.dependency_overrides[get_redis] = lambda: fake_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
