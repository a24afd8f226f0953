"""arq job functions run against an injected store."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from sloop.workers.league_worker import replay_offline_queue, run_weekly_league_job
from sloop.workers.settings import WorkerSettings


class TestWeeklyLeagueJob:
    @pytest.mark.asyncio
    async def test_closes_week_then_skips(self, store, make_user):
        await make_user("a", weekly_xp=900)
        ctx = {"store": store, "redis": AsyncMock()}

        first = await run_weekly_league_job(ctx)
        second = await run_weekly_league_job(ctx)

        assert first["success"] is True
        assert first["data"]["promoted"] == 1
        assert second["already_processed"] is True

    @pytest.mark.asyncio
    async def test_runs_without_redis(self, store):
        result = await run_weekly_league_job({"store": store})
        assert result["success"] is True

    def test_cron_fires_monday_midnight(self):
        job = WorkerSettings.cron_jobs[0]
        assert (job.weekday, job.hour, job.minute) == (0, 0, 0)
        assert job.unique is True
        assert run_weekly_league_job in WorkerSettings.functions
        assert replay_offline_queue in WorkerSettings.functions


class TestReplayJob:
    @pytest.mark.asyncio
    async def test_unknown_user(self, store):
        result = await replay_offline_queue({"store": store}, "ghost")
        assert result["reason"] == "not_found"

    @pytest.mark.asyncio
    async def test_empty_queue(self, store, make_user):
        await make_user()
        result = await replay_offline_queue({"store": store}, "user-1")
        assert result["data"]["processed_count"] == 0
