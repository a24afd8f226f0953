"""Follow graph and friends-feed endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Path, Query

from sloop.dependencies import StoreDep, UserIdDep
from sloop.responses import unwrap
from sloop.results import OperationResult
from sloop.social.follow_service import (
    DEFAULT_FEED_LIMIT,
    MAX_FEED_LIMIT,
    follow_user,
    get_friends_feed,
    list_following,
    unfollow_user,
)

router = APIRouter(prefix="/api/v1/social", tags=["Social"])

TargetId = Annotated[str, Path(min_length=1, max_length=64)]


@router.post("/follows/{target_id}", response_model=OperationResult)
async def follow_endpoint(target_id: TargetId, store: StoreDep, user_id: UserIdDep):
    return unwrap(await follow_user(store, user_id, target_id))


@router.delete("/follows/{target_id}", response_model=OperationResult)
async def unfollow_endpoint(target_id: TargetId, store: StoreDep, user_id: UserIdDep):
    return unwrap(await unfollow_user(store, user_id, target_id))


@router.get("/follows", response_model=OperationResult)
async def following_endpoint(store: StoreDep, user_id: UserIdDep):
    """Users the caller follows, most recent first."""
    return unwrap(await list_following(store, user_id))


@router.get("/feed", response_model=OperationResult)
async def friends_feed_endpoint(
    store: StoreDep,
    user_id: UserIdDep,
    limit: int = Query(DEFAULT_FEED_LIMIT, ge=1, le=MAX_FEED_LIMIT),
):
    """Friends feed: followed users' activities, newest first."""
    return unwrap(await get_friends_feed(store, user_id, limit))
