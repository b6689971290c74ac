"""The arq job wraps the sweep in its own session."""

from datetime import datetime, timedelta, timezone

import pytest

from shinobi.workers.daily_check import WorkerSettings, run_daily_checks_job


class TestDailyCheckJob:
    @pytest.mark.asyncio
    async def test_job_returns_report(self, db_session, bob, make_challenge, join):
        ended = await make_challenge(title="Ended")
        await join(bob, ended, now=datetime.now(timezone.utc) - timedelta(days=11))

        report = await run_daily_checks_job({})

        assert report["processed"] == 1
        assert report["partial"] == 1
        assert report["errors"] == 0
        assert report["emails_sent"] == 0

    def test_cron_registered(self):
        assert run_daily_checks_job in WorkerSettings.functions
        assert WorkerSettings.max_jobs == 1
        assert len(WorkerSettings.cron_jobs) == 1
