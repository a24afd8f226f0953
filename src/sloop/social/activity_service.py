"""Social activity feed: records written inside game transactions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sloop.errors import InvalidArgumentError
from sloop.storage.base import ActivityRecord, StoreTransaction

CHALLENGE_COMPLETED = "challenge_completed"
MILESTONE_REACHED = "milestone_reached"
LEAGUE_PROMOTED = "league_promoted"
BOOSTER_GIFTED = "booster_gifted"

ACTIVITY_TYPES = frozenset({CHALLENGE_COMPLETED, MILESTONE_REACHED, LEAGUE_PROMOTED, BOOSTER_GIFTED})


async def record_activity(
    tx: StoreTransaction,
    user_id: str,
    activity_type: str,
    details: str,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> ActivityRecord:
    """Record a feed entry as part of the caller's transaction."""
    if activity_type not in ACTIVITY_TYPES:
        raise InvalidArgumentError(f"Unknown activity type: {activity_type}")
    activity = ActivityRecord(
        user_id=user_id,
        activity_type=activity_type,
        details=details,
        metadata=metadata or {},
        created_at=now or datetime.now(timezone.utc),
    )
    await tx.add_activity(activity)
    return activity


async def get_activity_feed(tx: StoreTransaction, user_id: str, limit: int = 20) -> list[ActivityRecord]:
    """Newest entries first."""
    return await tx.list_activities(user_id, limit)


def activity_dict(activity: ActivityRecord) -> dict[str, Any]:
    return {
        "user_id": activity.user_id,
        "activity_type": activity.activity_type,
        "details": activity.details,
        "metadata": activity.metadata,
        "created_at": activity.created_at.isoformat() if activity.created_at else None,
    }
