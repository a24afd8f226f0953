"""Service flows against SqlGameStore on SQLite (aiosqlite)."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from sloop.boosters.service import purchase_or_gift_booster
from sloop.entitlements.service import grant_entitlements
from sloop.errors import ConflictError
from sloop.leagues.ranking import SILVER
from sloop.leagues.service import get_leaderboard, get_league_snapshots, run_weekly_league_update
from sloop.offline.actions import AwardXpAction, RecordDailyActivityAction, RedeemGracePassAction
from sloop.offline.service import enqueue_action, process_queued_actions
from sloop.progression.service import award_xp, get_xp_history
from sloop.social.follow_service import follow_user, get_friends_feed, unfollow_user
from sloop.storage.base import FollowRecord, LedgerEntry
from sloop.streaks.service import record_daily_activity, redeem_grace_pass
from sloop.users.service import create_profile, get_feed

NOON = datetime(2026, 10, 21, 12, 0, tzinfo=timezone.utc)
JOB_TIME = datetime(2026, 10, 19, 0, 0, tzinfo=timezone.utc)


async def _user(store, user_id="user-1"):
    async with store.transaction() as tx:
        return await tx.get_user(user_id)


class TestSqlUsers:
    @pytest.mark.asyncio
    async def test_profile_gets_starter_defaults(self, sql_store):
        result = await create_profile(sql_store, "user-1", "Ruth", now=NOON)
        assert result.success

        user = await _user(sql_store)
        assert (user.gems, user.grace_passes_available, user.level, user.league) == (50, 1, 1, 1)
        assert user.created_at.tzinfo is not None

        again = await create_profile(sql_store, "user-1", "Ruth", now=NOON)
        assert again.already_processed

    @pytest.mark.asyncio
    async def test_negative_counter_violates_check(self, sql_store, make_sql_user):
        await make_sql_user(gems=10)
        with pytest.raises(IntegrityError):
            async with sql_store.transaction() as tx:
                await tx.increment_user("user-1", gems=-20)
        assert (await _user(sql_store)).gems == 10


class TestSqlAwardXP:
    @pytest.mark.asyncio
    async def test_award_and_replay(self, sql_store, make_sql_user):
        await make_sql_user()
        first = await award_xp(sql_store, "user-1", 600, "challenge", "act-1", now=NOON)
        replay = await award_xp(sql_store, "user-1", 600, "challenge", "act-1", now=NOON)

        assert first.data["xp_awarded"] == 600
        assert first.data["leveled_up"] is True
        assert replay.already_processed
        user = await _user(sql_store)
        assert (user.xp, user.weekly_xp, user.lifetime_xp, user.level, user.gems) == (600, 600, 600, 2, 56)

        history = await get_xp_history(sql_store, "user-1")
        assert history.data["total"] == 1
        assert history.data["entries"][0]["created_at"].endswith("+00:00")

    @pytest.mark.asyncio
    async def test_booster_applies_in_sql(self, sql_store, make_sql_user):
        await make_sql_user(gems=100)
        await purchase_or_gift_booster(sql_store, "user-1", "2x", "b1", now=NOON)
        result = await award_xp(sql_store, "user-1", 100, "challenge", "act-1", now=NOON + timedelta(minutes=5))
        assert result.data["xp_awarded"] == 200

    @pytest.mark.asyncio
    async def test_duplicate_ledger_insert_is_conflict(self, sql_store, make_sql_user):
        await make_sql_user()
        entry = LedgerEntry(
            action_id="dup", user_id="user-1", amount=1, base_amount=1, source="s", created_at=NOON
        )
        async with sql_store.transaction() as tx:
            await tx.insert_ledger_entry(entry)

        with pytest.raises(ConflictError):
            async with sql_store.transaction() as tx:
                await tx.insert_ledger_entry(entry)


class TestSqlStreaksAndBoosters:
    @pytest.mark.asyncio
    async def test_streak_and_grace_pass(self, sql_store, make_sql_user):
        await make_sql_user(streak=10, longest_streak=10, last_active_date=date(2026, 10, 10))
        await record_daily_activity(sql_store, "user-1", date(2026, 10, 12), now=NOON)

        result = await redeem_grace_pass(sql_store, "user-1", "tok1", now=NOON)
        replay = await redeem_grace_pass(sql_store, "user-1", "tok1", now=NOON)

        assert result.data["streak"] == 11
        assert replay.already_processed
        user = await _user(sql_store)
        assert (user.streak, user.grace_passes_available, user.grace_passes_used) == (11, 0, 1)

    @pytest.mark.asyncio
    async def test_gift_replaces_active_booster(self, sql_store, make_sql_user):
        await make_sql_user("giver", gems=500)
        await make_sql_user("friend")
        await purchase_or_gift_booster(sql_store, "friend", "2x", "g1", giver_id="giver", now=NOON)
        second = await purchase_or_gift_booster(sql_store, "friend", "3x", "g2", giver_id="giver", now=NOON)

        assert second.data["replaced_boosters"] == 1
        async with sql_store.transaction() as tx:
            active = await tx.active_boosters("friend", NOON)
        assert [b.action_id for b in active] == ["g2"]
        assert active[0].expires_at == NOON + timedelta(hours=1)
        assert (await _user(sql_store, "giver")).gems == 350

        feed = await get_feed(sql_store, "giver")
        assert [a["activity_type"] for a in feed.data["activities"]] == ["booster_gifted", "booster_gifted"]


class TestSqlLeagues:
    @pytest.mark.asyncio
    async def test_weekly_update_once_per_period(self, sql_store, make_sql_user):
        await make_sql_user("a", weekly_xp=800, xp=800)
        await make_sql_user("b", weekly_xp=100, xp=100, morning_bonus_date=date(2026, 10, 18))

        first = await run_weekly_league_update(sql_store, JOB_TIME)
        second = await run_weekly_league_update(sql_store, JOB_TIME)

        assert first.data["promoted"] == 1
        assert second.already_processed
        a, b = await _user(sql_store, "a"), await _user(sql_store, "b")
        assert (a.league, a.weekly_xp, a.league_position) == (SILVER, 0, 1)
        assert b.morning_bonus_date is None

        snapshots = await get_league_snapshots(sql_store)
        assert [s["period_start"] for s in snapshots.data["snapshots"]] == ["2026-10-12"]

        board = await get_leaderboard(sql_store)
        assert [e["user_id"] for e in board.data["entries"]] == ["a", "b"]


class TestSqlOffline:
    @pytest.mark.asyncio
    async def test_replay_queue(self, sql_store, make_sql_user):
        await make_sql_user(grace_passes_available=0)
        await enqueue_action(
            sql_store, "user-1", "d1", RecordDailyActivityAction(), NOON - timedelta(days=2), now=NOON
        )
        await enqueue_action(sql_store, "user-1", "g1", RedeemGracePassAction(), NOON - timedelta(days=1), now=NOON)
        await enqueue_action(
            sql_store, "user-1", "a1", AwardXpAction(amount=10, source="lesson"), NOON - timedelta(hours=1), now=NOON
        )

        result = await process_queued_actions(sql_store, "user-1", NOON)

        assert [o["action_id"] for o in result.data["outcomes"]] == ["d1", "g1", "a1"]
        assert result.data["failed_count"] == 1
        assert result.data["remaining"] == 0
        async with sql_store.transaction() as tx:
            assert await tx.pending_actions("user-1") == []
            failed = await tx.get_action("g1")
        assert failed.result["reason"] == "insufficient_resource"
        assert failed.processed_at.tzinfo is not None


class TestSqlEntitlements:
    @pytest.mark.asyncio
    async def test_grant_once(self, sql_store, make_sql_user):
        await make_sql_user()
        await grant_entitlements(sql_store, "user-1", "support_mission_large", "txn-1", now=NOON)
        again = await grant_entitlements(sql_store, "user-1", "support_mission_large", "txn-1", now=NOON)

        assert again.already_processed
        user = await _user(sql_store)
        assert (user.gems, user.grace_passes_available) == (550, 4)


class TestSqlFollows:
    @pytest.mark.asyncio
    async def test_follow_feed_and_unfollow(self, sql_store, make_sql_user):
        for user_id in ("user-1", "friend", "stranger"):
            await make_sql_user(user_id)
        assert (await follow_user(sql_store, "user-1", "friend", now=NOON)).success
        assert (await follow_user(sql_store, "user-1", "friend", now=NOON)).already_processed

        await award_xp(sql_store, "friend", 10, "lesson", "f1", now=NOON)
        await award_xp(sql_store, "stranger", 10, "lesson", "s1", now=NOON + timedelta(minutes=1))
        await award_xp(sql_store, "friend", 20, "lesson", "f2", now=NOON + timedelta(minutes=2))

        feed = (await get_friends_feed(sql_store, "user-1")).data["activities"]
        assert [a["metadata"]["action_id"] for a in feed] == ["f2", "f1"]
        assert feed[0]["created_at"].endswith("+00:00")

        assert (await unfollow_user(sql_store, "user-1", "friend")).success
        assert (await get_friends_feed(sql_store, "user-1")).data["activities"] == []

    @pytest.mark.asyncio
    async def test_duplicate_follow_row_is_conflict(self, sql_store, make_sql_user):
        await make_sql_user("user-1")
        await make_sql_user("friend")
        await follow_user(sql_store, "user-1", "friend", now=NOON)

        with pytest.raises(ConflictError):
            async with sql_store.transaction() as tx:
                await tx.insert_follow(FollowRecord(follower_id="user-1", following_id="friend", created_at=NOON))
