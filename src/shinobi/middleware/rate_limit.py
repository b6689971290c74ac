"""Fixed-window request limiting per client address, counted in Redis."""

import time
from typing import Any

import structlog
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from shinobi.redis_client import get_optional_redis

logger = structlog.get_logger()

EXEMPT_PATHS = frozenset({"/health", "/ready", "/version"})


def client_key(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Without Redis, or when Redis errors, requests pass unlimited."""

    def __init__(self, app: Any, limit: int = 100, window_seconds: int = 60) -> None:  # noqa: ANN401
        super().__init__(app)
        self.limit = limit
        self.window_seconds = window_seconds

    async def _hit(self, redis: Any, key: str) -> int | None:  # noqa: ANN401
        try:
            async with redis.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, self.window_seconds + 1)
                count, _ = await pipe.execute()
        except RedisError as e:
            logger.warning("rate_limit_unavailable", error=str(e))
            return None
        return int(count)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        redis = get_optional_redis()
        if redis is None or request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        now = int(time.time())
        window = now // self.window_seconds
        count = await self._hit(redis, f"shinobi:ratelimit:{client_key(request)}:{window}")
        if count is None:
            return await call_next(request)

        headers = {"X-RateLimit-Limit": str(self.limit), "X-RateLimit-Remaining": str(max(0, self.limit - count))}
        if count > self.limit:
            retry_after = (window + 1) * self.window_seconds - now
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={**headers, "Retry-After": str(retry_after)},
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
