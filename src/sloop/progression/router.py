"""XP API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Query

from sloop.dependencies import RedisDep, StoreDep, UserIdDep
from sloop.progression.schemas import AwardXPRequest
from sloop.progression.service import award_xp, get_xp_history
from sloop.responses import unwrap
from sloop.results import OperationResult

router = APIRouter(prefix="/api/v1", tags=["XP"])


@router.post("/xp/award", response_model=OperationResult)
async def award_xp_endpoint(body: AwardXPRequest, store: StoreDep, redis: RedisDep, user_id: UserIdDep):
    """Award XP for a completed activity. Replays of ``action_id`` award nothing."""
    result = await award_xp(
        store,
        user_id,
        body.amount,
        body.source,
        body.action_id,
        body.metadata,
        redis=redis,
    )
    return unwrap(result)


@router.get("/xp/history", response_model=OperationResult)
async def xp_history_endpoint(
    store: StoreDep,
    user_id: UserIdDep,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
):
    return unwrap(await get_xp_history(store, user_id, page, per_page))
