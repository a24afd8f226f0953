"""Progression profiles."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sloop.errors import InvalidArgumentError, NotFoundError
from sloop.leagues.ranking import LEAGUE_NAMES
from sloop.progression.levels import level_info
from sloop.results import OperationResult, operation
from sloop.social.activity_service import activity_dict, get_activity_feed
from sloop.storage.base import GameStore, StoreTransaction, UserState, run_transaction

MAX_USER_ID_LENGTH = 64
MAX_NAME_LENGTH = 128
MAX_FEED = 100


def profile_dict(user: UserState, now: datetime) -> dict[str, Any]:
    today = now.date()
    return {
        "user_id": user.user_id,
        "name": user.name,
        "xp": user.xp,
        "weekly_xp": user.weekly_xp,
        "lifetime_xp": user.lifetime_xp,
        "gems": user.gems,
        "streak": user.streak,
        "longest_streak": user.longest_streak,
        "last_active_date": user.last_active_date.isoformat() if user.last_active_date else None,
        "today_completed": user.last_active_date == today,
        "total_days_studied": user.total_days_studied,
        "grace_passes_available": user.grace_passes_available,
        "grace_passes_used": user.grace_passes_used,
        "restorable_streak": user.streak_before_break,
        "league": user.league,
        "league_name": LEAGUE_NAMES[user.league],
        "league_position": user.league_position,
        "morning_bonus_available": user.morning_bonus_date != today,
        "has_streak_bonus": user.has_streak_bonus,
        **level_info(user.xp),
    }


@operation
async def create_profile(
    store: GameStore,
    user_id: str,
    name: str,
    *,
    now: datetime | None = None,
) -> OperationResult:
    """Create the progression record with starter defaults. Idempotent per user."""
    if not user_id or not user_id.strip() or len(user_id) > MAX_USER_ID_LENGTH:
        raise InvalidArgumentError("user_id must be 1-64 characters")
    name = (name or "").strip()
    if not name or len(name) > MAX_NAME_LENGTH:
        raise InvalidArgumentError("name must be 1-128 characters")
    now = now or datetime.now(timezone.utc)

    async def work(tx: StoreTransaction) -> OperationResult:
        existing = await tx.get_user(user_id)
        if existing is not None:
            return OperationResult.ok(already_processed=True, profile=profile_dict(existing, now))
        user = UserState(user_id=user_id, name=name, created_at=now, updated_at=now)
        await tx.insert_user(user)
        return OperationResult.ok(profile=profile_dict(user, now))

    return await run_transaction(store, work)


@operation
async def get_profile(store: GameStore, user_id: str, *, now: datetime | None = None) -> OperationResult:
    now = now or datetime.now(timezone.utc)
    async with store.transaction() as tx:
        user = await tx.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        following = await tx.list_following(user_id)
        followers = await tx.count_followers(user_id)
    profile = profile_dict(user, now)
    profile.update(following_count=len(following), follower_count=followers)
    return OperationResult.ok(profile=profile)


@operation
async def get_feed(store: GameStore, user_id: str, limit: int = 20) -> OperationResult:
    """The user's own activity feed, newest first."""
    if not 1 <= limit <= MAX_FEED:
        raise InvalidArgumentError(f"limit must be between 1 and {MAX_FEED}")
    async with store.transaction() as tx:
        if await tx.get_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        activities = await get_activity_feed(tx, user_id, limit)
    return OperationResult.ok(activities=[activity_dict(a) for a in activities])
