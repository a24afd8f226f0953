"""Best-effort Redis pub/sub fan-out for game events.

Events are published after the owning transaction commits. A missing or
failing Redis never fails the operation that emitted the event.
"""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

LEVEL_UP_CHANNEL = "pubsub:level_up"
LEAGUE_UPDATE_CHANNEL = "pubsub:league_update"
BOOSTER_CHANNEL = "pubsub:booster_gifted"
ENTITLEMENT_CHANNEL = "pubsub:entitlement_granted"


async def publish(redis: object, channel: str, payload: dict[str, Any]) -> bool:
    """Publish ``payload`` as JSON. Returns False if nothing was sent."""
    if redis is None:
        return False
    try:
        await redis.publish(channel, json.dumps(payload, default=str))  # type: ignore[attr-defined]
    except Exception:
        logger.warning("Failed to publish %s event", channel, exc_info=True)
        return False
    return True
