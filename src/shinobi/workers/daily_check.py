"""arq worker for the daily challenge sweep.

Settles ended participations and sends practice reminders once a day.

Worker:   arq shinobi.workers.settings.WorkerSettings
One-shot: python -m shinobi.workers.daily_check
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict

from arq import cron
from arq.connections import RedisSettings

from shinobi.challenges.sweep import run_daily_checks
from shinobi.config import get_settings
from shinobi.database import close_db, get_session_factory, init_db
from shinobi.email.service import EmailService
from shinobi.middleware.logging import setup_logging
from shinobi.redis_client import close_redis, get_optional_redis, init_redis

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Open the database and Redis pools the sweep needs."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)
    await init_redis(settings.redis_url, settings.redis_max_connections)
    ctx["email_service"] = EmailService.from_settings(settings, redis=get_optional_redis())
    logger.info("Daily check worker started (hour=%d UTC)", settings.daily_check_hour_utc)


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    await close_db()
    await close_redis()
    logger.info("Daily check worker shut down")


async def run_daily_checks_job(ctx: dict) -> dict[str, object]:  # type: ignore[type-arg]
    """Run one sweep and return its report as the job result."""
    async with get_session_factory()() as db:
        report = await run_daily_checks(db, email_service=ctx.get("email_service"))
    if report.errors:
        logger.error("Daily sweep finished with %d failed records: %s", report.errors, report.error_ids)
    return asdict(report)


class WorkerSettings:
    """arq worker settings for the daily sweep."""

    functions = [run_daily_checks_job]
    cron_jobs = [
        cron(run_daily_checks_job, hour={get_settings().daily_check_hour_utc}, minute={0}, run_at_startup=False),
    ]
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    on_startup = startup
    on_shutdown = shutdown
    max_jobs = 1
    job_timeout = 3600


async def _main() -> None:
    ctx: dict = {}  # type: ignore[type-arg]
    await startup(ctx)
    try:
        report = await run_daily_checks_job(ctx)
        logger.info("Daily sweep report: %s", report)
    finally:
        await shutdown(ctx)


if __name__ == "__main__":
    asyncio.run(_main())
