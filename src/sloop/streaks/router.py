"""Streak API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from sloop.dependencies import StoreDep, UserIdDep, require_admin
from sloop.progression.service import enable_streak_bonus
from sloop.responses import unwrap
from sloop.results import OperationResult
from sloop.streaks.schemas import GracePassRequest
from sloop.streaks.service import record_daily_activity, redeem_grace_pass

router = APIRouter(prefix="/api/v1/streak", tags=["Streak"])


@router.post("/activity", response_model=OperationResult)
async def record_activity_endpoint(store: StoreDep, user_id: UserIdDep):
    """Count today's activity. The day is always the server's UTC date."""
    return unwrap(await record_daily_activity(store, user_id))


@router.post("/grace-pass", response_model=OperationResult)
async def grace_pass_endpoint(body: GracePassRequest, store: StoreDep, user_id: UserIdDep):
    """Spend a grace pass to restore a broken streak."""
    return unwrap(await redeem_grace_pass(store, user_id, body.action_id))


@router.post("/bonus/{user_id}", response_model=OperationResult, dependencies=[Depends(require_admin)])
async def streak_bonus_endpoint(user_id: str, store: StoreDep):
    """Support tooling: arm a user's one-shot streak bonus by hand."""
    return unwrap(await enable_streak_bonus(store, user_id))
