"""Offline queue API endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from sloop.dependencies import RedisDep, StoreDep, UserIdDep
from sloop.offline.actions import QueuedActionIn
from sloop.offline.service import enqueue_action, process_queued_actions
from sloop.responses import unwrap
from sloop.results import OperationResult

router = APIRouter(prefix="/api/v1/offline", tags=["Offline"])


@router.post("/actions", response_model=OperationResult)
async def queue_action(body: QueuedActionIn, store: StoreDep, user_id: UserIdDep):
    """Queue an action recorded while the client was offline."""
    return unwrap(await enqueue_action(store, user_id, body.action_id, body.action, body.created_at))


@router.post("/process", response_model=OperationResult)
async def process_queue(store: StoreDep, redis: RedisDep, user_id: UserIdDep):
    """Replay the caller's queue, oldest first."""
    return unwrap(await process_queued_actions(store, user_id, redis=redis))
