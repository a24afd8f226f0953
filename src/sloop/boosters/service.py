"""Booster purchase and gifting."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sloop.boosters.catalog import BOOSTER_DURATIONS, BOOSTER_GEM_COSTS, BOOSTER_SHOP
from sloop.errors import InsufficientResourceError, InvalidArgumentError
from sloop.events import BOOSTER_CHANNEL, publish
from sloop.progression.service import lock_user
from sloop.results import OperationResult, operation
from sloop.social.activity_service import BOOSTER_GIFTED, record_activity
from sloop.storage.base import BoosterState, GameStore, StoreTransaction, UserState, run_transaction

logger = logging.getLogger(__name__)


def get_booster_shop() -> list[dict]:
    return [dict(item) for item in BOOSTER_SHOP]


@operation
async def purchase_or_gift_booster(
    store: GameStore,
    target_user_id: str,
    booster_type: str,
    action_id: str,
    giver_id: str | None = None,
    charge_gems: bool = True,
    *,
    now: datetime | None = None,
    redis: object = None,
) -> OperationResult:
    """Activate a booster for ``target_user_id``, once per ``action_id``.

    The payer is the giver when gifting, else the target. A new booster
    replaces whatever booster the target had running, so at most one is
    active per user. Gifts are recorded on the giver's feed.
    """
    if booster_type not in BOOSTER_DURATIONS:
        raise InvalidArgumentError(f"Invalid booster type: {booster_type}")
    if not action_id or not action_id.strip():
        raise InvalidArgumentError("action_id is required")
    if giver_id == target_user_id:
        giver_id = None
    now = now or datetime.now(timezone.utc)

    async def work(tx: StoreTransaction) -> OperationResult:
        # Fixed lock order across both users avoids deadlocks between gifts
        users: dict[str, UserState] = {}
        for user_id in sorted({target_user_id, giver_id} - {None}):
            users[user_id] = await lock_user(tx, user_id)

        existing = await tx.get_booster(action_id)
        if existing is not None:
            if existing.user_id != target_user_id:
                raise InvalidArgumentError(f"action_id {action_id} belongs to another booster")
            return OperationResult.ok(
                already_processed=True,
                message="Already processed",
                booster_type=existing.booster_type,
                expires_at=existing.expires_at.isoformat(),
            )

        payer_id = giver_id or target_user_id
        cost = BOOSTER_GEM_COSTS[booster_type] if charge_gems else 0
        if cost and users[payer_id].gems < cost:
            raise InsufficientResourceError(
                f"Booster costs {cost} gems, {users[payer_id].gems} available"
            )

        expires_at = now + BOOSTER_DURATIONS[booster_type]
        await tx.insert_booster(BoosterState(
            action_id=action_id,
            user_id=target_user_id,
            booster_type=booster_type,
            expires_at=expires_at,
            giver_id=giver_id,
            created_at=now,
        ))
        replaced = await tx.deactivate_boosters(target_user_id, keep_action_id=action_id)
        if cost:
            await tx.increment_user(payer_id, gems=-cost)

        if giver_id is not None:
            await record_activity(
                tx,
                giver_id,
                BOOSTER_GIFTED,
                f"Gifted a {booster_type} XP booster",
                {"to_user_id": target_user_id, "booster_type": booster_type, "action_id": action_id},
                now,
            )

        return OperationResult.ok(
            booster_type=booster_type,
            expires_at=expires_at.isoformat(),
            gems_spent=cost,
            replaced_boosters=replaced,
            gifted=giver_id is not None,
        )

    result = await run_transaction(store, work)
    if giver_id is not None and not result.already_processed:
        await publish(redis, BOOSTER_CHANNEL, {
            "from_user_id": giver_id,
            "to_user_id": target_user_id,
            "booster_type": booster_type,
            "expires_at": result.data["expires_at"],
        })
    return result
