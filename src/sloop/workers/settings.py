"""arq worker settings.

Import path for arq CLI: arq sloop.workers.settings.WorkerSettings
"""

from __future__ import annotations

from arq import cron
from arq.connections import RedisSettings

from sloop.config import get_settings
from sloop.workers.league_worker import (
    replay_offline_queue,
    run_weekly_league_job,
    worker_shutdown,
    worker_startup,
)

_settings = get_settings()


class WorkerSettings:
    """One worker runs the Monday league close and on-demand replays."""

    functions = [run_weekly_league_job, replay_offline_queue]
    cron_jobs = [
        cron(run_weekly_league_job, weekday=0, hour=0, minute=0, run_at_startup=False, unique=True),
    ]
    on_startup = worker_startup
    on_shutdown = worker_shutdown
    redis_settings = RedisSettings.from_dsn(_settings.arq_redis_url)
    max_jobs = 4
    job_timeout = _settings.league_job_timeout_seconds
