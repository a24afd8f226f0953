"""Profile API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Query

from sloop.dependencies import StoreDep, UserIdDep
from sloop.responses import unwrap
from sloop.results import OperationResult
from sloop.users.schemas import CreateProfileRequest
from sloop.users.service import create_profile, get_feed, get_profile

router = APIRouter(prefix="/api/v1", tags=["Profile"])


@router.post("/profile", response_model=OperationResult)
async def create_profile_endpoint(body: CreateProfileRequest, store: StoreDep, user_id: UserIdDep):
    """Create the caller's progression record (idempotent)."""
    return unwrap(await create_profile(store, user_id, body.name))


@router.get("/profile", response_model=OperationResult)
async def get_profile_endpoint(store: StoreDep, user_id: UserIdDep):
    return unwrap(await get_profile(store, user_id))


@router.get("/profile/activity", response_model=OperationResult)
async def get_feed_endpoint(
    store: StoreDep,
    user_id: UserIdDep,
    limit: int = Query(20, ge=1, le=100),
):
    """Caller's activity feed, newest first."""
    return unwrap(await get_feed(store, user_id, limit))
