"""HTTP middleware stack and error handlers."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shinobi.config import Settings
from shinobi.middleware.error_handler import setup_error_handlers
from shinobi.middleware.logging import setup_logging
from shinobi.middleware.rate_limit import RateLimitMiddleware
from shinobi.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware

RATE_LIMIT_HEADERS = ["X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"]


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Outermost first: CORS, request id, rate limit.

    Starlette wraps in reverse order of ``add_middleware`` calls, so CORS is
    added last and also decorates 429 responses.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        limit=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER, *RATE_LIMIT_HEADERS],
    )
