"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from shinobi.auth.router import router as auth_router
from shinobi.challenges.achievements import seed_achievements
from shinobi.challenges.router import router as challenges_router
from shinobi.config import get_settings
from shinobi.database import close_db, get_session_factory, init_db
from shinobi.health.router import router as health_router
from shinobi.learn.router import router as learn_router
from shinobi.middleware import setup_middleware
from shinobi.notifications.router import router as notifications_router
from shinobi.redis_client import close_redis, init_redis
from shinobi.users.router import router as users_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url, settings.redis_max_connections)

    # Achievement definitions (idempotent)
    try:
        async with get_session_factory()() as db:
            await seed_achievements(db)
    except SQLAlchemyError:
        logger.warning("Achievement seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="ShinobiSpeak API",
        description="Backend API for ShinobiSpeak: staked language-learning challenges",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(challenges_router)
    app.include_router(notifications_router)
    app.include_router(learn_router)

    return app


app = create_app()
