"""Follow graph and the friends feed built on it."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sloop.errors import InvalidArgumentError, NotFoundError
from sloop.results import OperationResult, operation
from sloop.social.activity_service import activity_dict
from sloop.storage.base import FollowRecord, GameStore, StoreTransaction, run_transaction

logger = logging.getLogger(__name__)

DEFAULT_FEED_LIMIT = 50
MAX_FEED_LIMIT = 100


async def _require_user(tx: StoreTransaction, user_id: str) -> None:
    if await tx.get_user(user_id) is None:
        raise NotFoundError(f"User {user_id} not found")


@operation
async def follow_user(
    store: GameStore,
    follower_id: str,
    following_id: str,
    *,
    now: datetime | None = None,
) -> OperationResult:
    """Follow another user. Following someone already followed is a no-op."""
    if not following_id or not following_id.strip():
        raise InvalidArgumentError("following_id is required")
    if follower_id == following_id:
        raise InvalidArgumentError("Users cannot follow themselves")
    now = now or datetime.now(timezone.utc)

    async def work(tx: StoreTransaction) -> OperationResult:
        await _require_user(tx, follower_id)
        await _require_user(tx, following_id)
        if await tx.get_follow(follower_id, following_id) is not None:
            return OperationResult.ok(already_processed=True, following_id=following_id, following=True)
        await tx.insert_follow(FollowRecord(follower_id=follower_id, following_id=following_id, created_at=now))
        return OperationResult.ok(following_id=following_id, following=True)

    result = await run_transaction(store, work)
    if not result.already_processed:
        logger.info("User %s followed %s", follower_id, following_id)
    return result


@operation
async def unfollow_user(store: GameStore, follower_id: str, following_id: str) -> OperationResult:
    """Stop following. Unfollowing someone not followed is a no-op."""

    async def work(tx: StoreTransaction) -> OperationResult:
        await _require_user(tx, follower_id)
        removed = await tx.delete_follow(follower_id, following_id)
        return OperationResult.ok(already_processed=not removed, following_id=following_id, following=False)

    return await run_transaction(store, work)


@operation
async def list_following(store: GameStore, user_id: str) -> OperationResult:
    async with store.transaction() as tx:
        await _require_user(tx, user_id)
        follows = await tx.list_following(user_id)
    return OperationResult.ok(
        following=[
            {
                "user_id": f.following_id,
                "since": f.created_at.isoformat() if f.created_at else None,
            }
            for f in follows
        ]
    )


@operation
async def get_friends_feed(store: GameStore, user_id: str, limit: int = DEFAULT_FEED_LIMIT) -> OperationResult:
    """Activities of the users ``user_id`` follows, newest first.

    The caller's own entries are not included; they live in the profile feed.
    """
    if not 1 <= limit <= MAX_FEED_LIMIT:
        raise InvalidArgumentError(f"limit must be between 1 and {MAX_FEED_LIMIT}")
    async with store.transaction() as tx:
        await _require_user(tx, user_id)
        activities = await tx.list_followed_activities(user_id, limit)
    return OperationResult.ok(activities=[activity_dict(a) for a in activities])
