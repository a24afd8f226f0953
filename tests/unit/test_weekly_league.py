"""Weekly league job, leaderboard reads and snapshot history."""

from __future__ import annotations

from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import pytest

from sloop.leagues.ranking import BRONZE, DIAMOND, GOLD, SILVER
from sloop.leagues.service import get_leaderboard, get_league_snapshots, run_weekly_league_update
from sloop.leagues.week_utils import get_monday, get_previous_week, get_week_iso

NOON = datetime(2026, 10, 21, 12, 0, tzinfo=timezone.utc)
JOB_TIME = datetime(2026, 10, 19, 0, 0, tzinfo=timezone.utc)


async def _users(store):
    async with store.transaction() as tx:
        return {u.user_id: u for u in await tx.list_users()}


@pytest.fixture
async def bronze_league(make_user):
    await make_user("a", weekly_xp=800, xp=800)
    await make_user("b", weekly_xp=600, xp=600)
    await make_user("c", weekly_xp=550, xp=550)
    await make_user("d", weekly_xp=300, xp=300, morning_bonus_date=date(2026, 10, 18))


class TestWeekUtils:
    def test_previous_week_from_midweek(self):
        assert get_previous_week(NOON) == (date(2026, 10, 12), date(2026, 10, 18))

    def test_previous_week_at_job_time(self):
        assert get_previous_week(JOB_TIME) == (date(2026, 10, 12), date(2026, 10, 18))

    def test_monday_and_iso(self):
        assert get_monday(NOON) == date(2026, 10, 19)
        assert get_week_iso(NOON) == "2026-W43"


class TestWeeklyUpdate:
    """Promotion, counter reset and exactly-once per period."""

    @pytest.mark.asyncio
    async def test_promotion_scenario(self, store, bronze_league):
        redis = AsyncMock()
        result = await run_weekly_league_update(store, JOB_TIME, redis=redis)

        assert result.success
        assert result.data["period_start"] == "2026-10-12"
        assert result.data["period_end"] == "2026-10-18"
        assert result.data["week"] == "2026-W42"
        assert result.data["users_processed"] == 4
        assert result.data["promoted"] == 3
        assert result.data["relegated"] == 0

        users = await _users(store)
        assert [users[u].league for u in "abcd"] == [SILVER, SILVER, SILVER, BRONZE]
        assert all(u.weekly_xp == 0 for u in users.values())
        assert all(u.morning_bonus_date is None for u in users.values())
        assert [users[u].league_position for u in "abcd"] == [1, 2, 3, 4]
        # Lifetime counters are untouched
        assert users["a"].xp == 800
        redis.publish.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_snapshot_stored(self, store, bronze_league):
        await run_weekly_league_update(store, JOB_TIME)
        async with store.transaction() as tx:
            snapshot = await tx.get_snapshot(date(2026, 10, 12))
        assert snapshot is not None
        assert [r["user_id"] for r in snapshot.rankings] == ["a", "b", "c", "d"]
        assert snapshot.rankings[0]["old_league"] == BRONZE
        assert snapshot.rankings[0]["new_league"] == SILVER

    @pytest.mark.asyncio
    async def test_second_run_same_period_is_noop(self, store, make_user, bronze_league):
        await run_weekly_league_update(store, JOB_TIME)
        async with store.transaction() as tx:
            await tx.increment_user("d", weekly_xp=900)

        again = await run_weekly_league_update(store, NOON)

        assert again.success
        assert again.already_processed
        assert again.data["promoted"] == 3
        users = await _users(store)
        assert users["d"].weekly_xp == 900
        assert users["d"].league == BRONZE

    @pytest.mark.asyncio
    async def test_next_week_runs_again(self, store, bronze_league):
        await run_weekly_league_update(store, JOB_TIME)
        following = await run_weekly_league_update(store, datetime(2026, 10, 26, tzinfo=timezone.utc))
        assert not following.already_processed
        assert following.data["period_start"] == "2026-10-19"

    @pytest.mark.asyncio
    async def test_promotion_recorded_on_feed(self, store, bronze_league):
        await run_weekly_league_update(store, JOB_TIME)
        async with store.transaction() as tx:
            feed_a = await tx.list_activities("a", 5)
            feed_d = await tx.list_activities("d", 5)
        assert feed_a[0].activity_type == "league_promoted"
        assert feed_a[0].metadata["to_league"] == SILVER
        assert feed_d == []

    @pytest.mark.asyncio
    async def test_higher_leagues_rank_first(self, store, make_user):
        await make_user("bronze-top", weekly_xp=5000)
        await make_user("diamond-low", league=DIAMOND, weekly_xp=0)
        result = await run_weekly_league_update(store, JOB_TIME)
        assert [r["user_id"] for r in result.data["rankings"]] == ["diamond-low", "bronze-top"]

    @pytest.mark.asyncio
    async def test_empty_store(self, store):
        result = await run_weekly_league_update(store, JOB_TIME)
        assert result.success
        assert result.data["users_processed"] == 0


class TestLeaderboard:
    """League dominates score, then the timeframe's XP column."""

    @pytest.mark.asyncio
    async def test_weekly_ordering(self, store, make_user):
        await make_user("g1", league=GOLD, weekly_xp=100)
        await make_user("s1", league=SILVER, weekly_xp=900)
        await make_user("s2", league=SILVER, weekly_xp=950)

        result = await get_leaderboard(store)

        entries = result.data["entries"]
        assert [e["user_id"] for e in entries] == ["g1", "s2", "s1"]
        assert [e["rank"] for e in entries] == [1, 2, 3]
        assert entries[0]["league_name"] == "Gold"

    @pytest.mark.asyncio
    async def test_league_filter_and_limit(self, store, make_user):
        await make_user("g1", league=GOLD, weekly_xp=100)
        await make_user("s1", league=SILVER, weekly_xp=900)
        await make_user("s2", league=SILVER, weekly_xp=950)

        result = await get_leaderboard(store, league=SILVER, limit=1)
        assert [e["user_id"] for e in result.data["entries"]] == ["s2"]

    @pytest.mark.asyncio
    async def test_lifetime_timeframe(self, store, make_user):
        await make_user("a", weekly_xp=900, lifetime_xp=100)
        await make_user("b", weekly_xp=10, lifetime_xp=5000)
        result = await get_leaderboard(store, timeframe="lifetime")
        assert [e["user_id"] for e in result.data["entries"]] == ["b", "a"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [{"timeframe": "daily"}, {"league": 5}, {"league": 0}, {"limit": 0}],
    )
    async def test_invalid_arguments(self, store, kwargs):
        result = await get_leaderboard(store, **kwargs)
        assert result.reason == "invalid_argument"


class TestSnapshots:
    @pytest.mark.asyncio
    async def test_most_recent_first(self, store, bronze_league):
        await run_weekly_league_update(store, JOB_TIME)
        await run_weekly_league_update(store, datetime(2026, 10, 26, tzinfo=timezone.utc))

        result = await get_league_snapshots(store, limit=10)
        starts = [s["period_start"] for s in result.data["snapshots"]]
        assert starts == ["2026-10-19", "2026-10-12"]

    @pytest.mark.asyncio
    async def test_limit_bounds(self, store):
        assert (await get_league_snapshots(store, limit=0)).reason == "invalid_argument"
        assert (await get_league_snapshots(store, limit=53)).reason == "invalid_argument"
