"""Liveness, readiness, and version probes (never rate limited)."""

from collections.abc import Awaitable

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from shinobi.config import get_settings
from shinobi.database import get_session
from shinobi.redis_client import get_optional_redis

router = APIRouter()

OK = "ok"


class ReadinessResponse(BaseModel):
    status: str
    checks: dict[str, str]


class VersionResponse(BaseModel):
    version: str
    environment: str
    chain_id: str


async def _probe(check: Awaitable[object]) -> str:
    try:
        await check
    except Exception as exc:  # noqa: BLE001
        return f"error: {exc}"
    return OK


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/ready", response_model=ReadinessResponse)
async def readiness(db: AsyncSession = Depends(get_session)) -> ReadinessResponse:  # noqa: B008
    """Always 200; ``degraded`` when a dependency is missing or failing."""
    redis = get_optional_redis()
    checks = {
        "database": await _probe(db.execute(text("SELECT 1"))),
        "redis": await _probe(redis.ping()) if redis is not None else "not configured",
    }
    status = "ready" if all(v == OK for v in checks.values()) else "degraded"
    return ReadinessResponse(status=status, checks=checks)


@router.get("/version", response_model=VersionResponse)
async def version() -> VersionResponse:
    settings = get_settings()
    return VersionResponse(
        version=settings.app_version,
        environment=settings.environment,
        chain_id=str(settings.chain_id),
    )
