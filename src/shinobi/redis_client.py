"""Process-wide Redis client.

Used for wallet sign-in nonces, rate-limit counters, email throttling and
notification pub/sub. Everything except sign-in keeps working without it.
"""

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from shinobi.errors import ServiceUnavailable

logger = structlog.get_logger()

_client: redis.Redis | None = None


async def init_redis(url: str, max_connections: int = 20) -> redis.Redis | None:
    """Connect and ping. An unreachable server leaves Redis disabled (returns None)."""
    global _client  # noqa: PLW0603
    client = redis.from_url(url, decode_responses=True, max_connections=max_connections)  # type: ignore[no-untyped-call]
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning("redis_unavailable", error=str(e))
        await client.aclose()
        return None
    _client = client
    return client


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    client, _client = _client, None
    if client is not None:
        await client.aclose()


def get_redis() -> redis.Redis:
    """FastAPI dependency for routes that cannot work without Redis."""
    if _client is None:
        raise ServiceUnavailable("Session store is unavailable")
    return _client


def get_optional_redis() -> redis.Redis | None:
    return _client
