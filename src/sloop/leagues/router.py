"""League API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from sloop.dependencies import RedisDep, StoreDep, require_admin
from sloop.leagues.service import get_leaderboard, get_league_snapshots, run_weekly_league_update
from sloop.responses import unwrap
from sloop.results import OperationResult

router = APIRouter(prefix="/api/v1/leagues", tags=["Leagues"])


@router.get("/leaderboard", response_model=OperationResult)
async def leaderboard(
    store: StoreDep,
    league: int | None = Query(None),
    timeframe: str = Query("weekly"),
    limit: int | None = Query(None, ge=1, le=500),
):
    """League-first leaderboard. ``league`` filters to one tier."""
    return unwrap(await get_leaderboard(store, league, timeframe, limit))


@router.post("/weekly-update", response_model=OperationResult, dependencies=[Depends(require_admin)])
async def weekly_update(store: StoreDep, redis: RedisDep):
    """Manually close last week's league cycle. Normally run by the worker cron."""
    return unwrap(await run_weekly_league_update(store, redis=redis))


@router.get("/snapshots", response_model=OperationResult)
async def snapshots(store: StoreDep, limit: int = Query(10, ge=1, le=52)):
    return unwrap(await get_league_snapshots(store, limit))
