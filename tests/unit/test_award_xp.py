"""award_xp: idempotency, bonuses, level-up and invariants."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from sloop.boosters.service import purchase_or_gift_booster
from sloop.progression.levels import MAX_XP_AWARD
from sloop.progression.service import award_xp, enable_streak_bonus, get_xp_history

NOON = datetime(2026, 10, 21, 12, 0, tzinfo=timezone.utc)
MORNING = datetime(2026, 10, 21, 7, 0, tzinfo=timezone.utc)


async def _user(store, user_id="user-1"):
    async with store.transaction() as tx:
        return await tx.get_user(user_id)


async def _ledger(store, user_id="user-1"):
    async with store.transaction() as tx:
        entries, total = await tx.list_ledger(user_id, 0, 100)
    return entries, total


class TestAwardXP:
    """Basic awards."""

    @pytest.mark.asyncio
    async def test_grants_xp_gems_and_ledger(self, store, make_user):
        await make_user()
        result = await award_xp(store, "user-1", 250, "challenge", "act-1", {"verse": "John 3:16"}, now=NOON)

        assert result.success
        assert not result.already_processed
        assert result.data["xp_awarded"] == 250
        assert result.data["gems_earned"] == 2
        assert result.data["new_level"] == 1

        user = await _user(store)
        assert (user.xp, user.weekly_xp, user.lifetime_xp, user.gems) == (250, 250, 250, 52)

        entries, total = await _ledger(store)
        assert total == 1
        assert entries[0].amount == 250
        assert entries[0].base_amount == 250
        assert entries[0].metadata["verse"] == "John 3:16"

        async with store.transaction() as tx:
            feed = await tx.list_activities("user-1", 10)
        assert feed[0].activity_type == "challenge_completed"

    @pytest.mark.asyncio
    async def test_zero_amount_is_allowed(self, store, make_user):
        await make_user()
        result = await award_xp(store, "user-1", 0, "practice", "act-0", now=NOON)
        assert result.success
        assert result.data["xp_awarded"] == 0

    @pytest.mark.asyncio
    async def test_unknown_user(self, store):
        result = await award_xp(store, "ghost", 10, "challenge", "act-1", now=NOON)
        assert not result.success
        assert result.reason == "not_found"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("amount", "source", "action_id"),
        [(-1, "challenge", "a"), (MAX_XP_AWARD + 1, "challenge", "a"), (10, "", "a"), (10, "challenge", " ")],
    )
    async def test_invalid_arguments(self, store, make_user, amount, source, action_id):
        await make_user()
        result = await award_xp(store, "user-1", amount, source, action_id, now=NOON)
        assert result.reason == "invalid_argument"
        user = await _user(store)
        assert user.xp == 0

    @pytest.mark.asyncio
    async def test_largest_award_with_every_bonus(self, store, make_user):
        await make_user(has_streak_bonus=True)
        await purchase_or_gift_booster(store, "user-1", "3x", "boost-1", charge_gems=False, now=MORNING)

        result = await award_xp(store, "user-1", MAX_XP_AWARD, "challenge", "a1", now=MORNING)
        assert result.data["xp_awarded"] == MAX_XP_AWARD * 9


class TestIdempotency:
    """A replayed action_id never mutates state twice."""

    @pytest.mark.asyncio
    async def test_duplicate_action_is_noop_success(self, store, make_user):
        await make_user()
        first = await award_xp(store, "user-1", 100, "challenge", "act-1", now=NOON)
        second = await award_xp(store, "user-1", 100, "challenge", "act-1", now=NOON)

        assert first.success and second.success
        assert second.already_processed
        assert second.data["xp_awarded"] == 0

        user = await _user(store)
        assert user.xp == 100
        assert user.gems == 51
        _, total = await _ledger(store)
        assert total == 1

    @pytest.mark.asyncio
    async def test_concurrent_retries_apply_once(self, store, make_user):
        await make_user()
        results = await asyncio.gather(
            *(award_xp(store, "user-1", 100, "challenge", "same", now=NOON) for _ in range(5))
        )
        assert all(r.success for r in results)
        assert sum(not r.already_processed for r in results) == 1
        assert (await _user(store)).xp == 100

    @pytest.mark.asyncio
    async def test_concurrent_distinct_actions_all_land(self, store, make_user):
        await make_user()
        await asyncio.gather(
            *(award_xp(store, "user-1", 10, "challenge", f"act-{i}", now=NOON) for i in range(20))
        )
        user = await _user(store)
        assert user.xp == 200
        assert user.lifetime_xp == 200


class TestBonuses:
    """Bonus permits are consumed by the award that uses them."""

    @pytest.mark.asyncio
    async def test_compounding_end_to_end(self, store, make_user):
        await make_user(has_streak_bonus=True)
        await purchase_or_gift_booster(store, "user-1", "2x", "boost-1", charge_gems=False, now=MORNING)

        result = await award_xp(store, "user-1", 100, "challenge", "act-1", now=MORNING)
        assert result.data["xp_awarded"] == 600
        assert result.data["bonuses"] == {"morning": True, "streak": True, "booster": "2x"}

        user = await _user(store)
        assert user.has_streak_bonus is False
        assert user.morning_bonus_date == MORNING.date()

    @pytest.mark.asyncio
    async def test_morning_bonus_once_per_day(self, store, make_user):
        await make_user()
        first = await award_xp(store, "user-1", 100, "challenge", "a1", now=MORNING)
        second = await award_xp(store, "user-1", 100, "challenge", "a2", now=MORNING + timedelta(minutes=30))
        tomorrow = await award_xp(store, "user-1", 100, "challenge", "a3", now=MORNING + timedelta(days=1))

        assert first.data["xp_awarded"] == 150
        assert second.data["xp_awarded"] == 100
        assert tomorrow.data["xp_awarded"] == 150

    @pytest.mark.asyncio
    async def test_streak_bonus_is_one_shot(self, store, make_user):
        await make_user()
        armed = await enable_streak_bonus(store, "user-1", now=NOON)
        assert armed.success

        first = await award_xp(store, "user-1", 100, "challenge", "a1", now=NOON)
        second = await award_xp(store, "user-1", 100, "challenge", "a2", now=NOON)
        assert first.data["xp_awarded"] == 200
        assert second.data["xp_awarded"] == 100

    @pytest.mark.asyncio
    async def test_enable_streak_bonus_twice(self, store, make_user):
        await make_user()
        await enable_streak_bonus(store, "user-1", now=NOON)
        again = await enable_streak_bonus(store, "user-1", now=NOON)
        assert again.success and again.already_processed

    @pytest.mark.asyncio
    async def test_latest_booster_wins(self, store, make_user):
        await make_user(gems=500)
        # 3x for 1h bought after a 2x for 2h: the 3x replaces it
        await purchase_or_gift_booster(store, "user-1", "2x", "b1", now=NOON)
        await purchase_or_gift_booster(store, "user-1", "3x", "b2", now=NOON + timedelta(minutes=5))

        result = await award_xp(store, "user-1", 100, "challenge", "a1", now=NOON + timedelta(minutes=10))
        assert result.data["xp_awarded"] == 300

    @pytest.mark.asyncio
    async def test_expired_booster_not_applied(self, store, make_user):
        await make_user()
        await purchase_or_gift_booster(store, "user-1", "3x", "b1", charge_gems=False, now=NOON)
        result = await award_xp(store, "user-1", 100, "challenge", "a1", now=NOON + timedelta(hours=2))
        assert result.data["xp_awarded"] == 100


class TestLevelUp:
    """Level is recomputed from accumulated xp."""

    @pytest.mark.asyncio
    async def test_level_up_publishes_event(self, store, make_user):
        await make_user(xp=450, lifetime_xp=450)
        redis = AsyncMock()

        result = await award_xp(store, "user-1", 100, "challenge", "a1", now=NOON, redis=redis)

        assert result.data["leveled_up"] is True
        assert result.data["new_level"] == 2
        redis.publish.assert_awaited_once()
        channel, _payload = redis.publish.await_args.args
        assert channel == "pubsub:level_up"

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_fail_award(self, store, make_user):
        await make_user(xp=499)
        redis = AsyncMock()
        redis.publish.side_effect = ConnectionError("redis down")

        result = await award_xp(store, "user-1", 10, "challenge", "a1", now=NOON, redis=redis)
        assert result.success
        assert (await _user(store)).level == 2

    @pytest.mark.asyncio
    async def test_no_event_without_level_change(self, store, make_user):
        await make_user()
        redis = AsyncMock()
        await award_xp(store, "user-1", 10, "challenge", "a1", now=NOON, redis=redis)
        redis.publish.assert_not_awaited()


class TestInvariants:
    """Counters stay non-negative and lifetime XP never decreases."""

    @pytest.mark.asyncio
    async def test_lifetime_monotonic_over_sequence(self, store, make_user):
        await make_user()
        previous = 0
        for i, amount in enumerate([5, 0, 120, 999, 1, 40]):
            await award_xp(store, "user-1", amount, "challenge", f"a{i}", now=NOON)
            await award_xp(store, "user-1", amount, "challenge", f"a{i}", now=NOON)
            user = await _user(store)
            assert user.lifetime_xp >= previous
            assert min(user.xp, user.weekly_xp, user.lifetime_xp, user.gems, user.streak) >= 0
            previous = user.lifetime_xp
        assert previous == 1165


class TestXPHistory:
    """Paginated ledger reads."""

    @pytest.mark.asyncio
    async def test_newest_first_with_pages(self, store, make_user):
        await make_user()
        for i in range(5):
            await award_xp(store, "user-1", 10 * (i + 1), "challenge", f"a{i}", now=NOON)

        page1 = await get_xp_history(store, "user-1", page=1, per_page=2)
        page3 = await get_xp_history(store, "user-1", page=3, per_page=2)

        assert page1.data["total"] == 5
        assert [e["action_id"] for e in page1.data["entries"]] == ["a4", "a3"]
        assert [e["action_id"] for e in page3.data["entries"]] == ["a0"]

    @pytest.mark.asyncio
    async def test_bad_page(self, store, make_user):
        await make_user()
        assert (await get_xp_history(store, "user-1", page=0)).reason == "invalid_argument"

    @pytest.mark.asyncio
    async def test_unknown_user(self, store):
        assert (await get_xp_history(store, "ghost")).reason == "not_found"
