"""Job functions for the arq worker: weekly league cron and offline replay.

Cron: the league week closes every Monday 00:00 UTC. Re-running the job for
a week that is already closed is a no-op, so a retried or duplicated cron
fire is safe.
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis

from sloop.config import get_settings
from sloop.database import close_db, get_session_factory, init_db
from sloop.leagues.service import run_weekly_league_update
from sloop.middleware.logging import setup_logging
from sloop.offline.service import process_queued_actions
from sloop.storage.sql import SqlGameStore

logger = logging.getLogger(__name__)


async def run_weekly_league_job(ctx: dict) -> dict:
    """Close the previous league week."""
    result = await run_weekly_league_update(ctx["store"], redis=ctx.get("redis"))
    if not result.success:
        logger.error("Weekly league update failed (%s): %s", result.reason, result.message)
    elif result.already_processed:
        logger.info("Weekly league update skipped: %s already closed", result.data["period_start"])
    return result.model_dump(mode="json")


async def replay_offline_queue(ctx: dict, user_id: str) -> dict:
    """Drain one user's offline queue outside a request.

    Clients drain their own queue through ``POST /api/v1/offline/process``.
    Operators enqueue this job by name to retry a queue that replay left
    deferred after a storage conflict.
    """
    result = await process_queued_actions(ctx["store"], user_id, redis=ctx.get("redis"))
    if result.success:
        logger.info(
            "Replayed offline queue for %s: %d processed, %d failed",
            user_id, result.data["processed_count"], result.data["failed_count"],
        )
    else:
        logger.warning("Offline replay for %s failed (%s): %s", user_id, result.reason, result.message)
    return result.model_dump(mode="json")


async def worker_startup(ctx: dict) -> None:
    """Initialize DB + Redis connections on worker startup."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)
    ctx["store"] = SqlGameStore(get_session_factory())
    ctx["redis"] = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    logger.info("League worker started")


async def worker_shutdown(ctx: dict) -> None:
    """Clean up on worker shutdown."""
    redis_client = ctx.get("redis")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("League worker shut down")

