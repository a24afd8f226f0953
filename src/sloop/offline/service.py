"""Offline action queue and replay.

Clients queue actions while offline and ask the server to drain the queue
once connectivity returns. Actions are replayed oldest first, each through
the same idempotent operation a live request would use, keyed by its own
``action_id``.

Replay policy: an action is marked processed after any attempt that ends in
success or a terminal error (not found, invalid argument, insufficient
resource, or an unexpected crash). Only a transient storage conflict leaves
it queued; the drain stops there so later actions never overtake it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import assert_never

from sloop.boosters.service import purchase_or_gift_booster
from sloop.errors import InvalidArgumentError, NotFoundError
from sloop.offline.actions import (
    AwardXpAction,
    GiftBoosterAction,
    OfflineAction,
    RecordDailyActivityAction,
    RedeemGracePassAction,
    parse_action,
    payload_of,
)
from sloop.progression.service import award_xp
from sloop.results import OperationResult, operation
from sloop.storage.base import GameStore, QueuedAction, StoreTransaction, run_transaction
from sloop.streaks.service import record_daily_activity, redeem_grace_pass

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "internal_error"
# Client clocks may run slightly ahead; queue times inside this window are clamped to now
CLOCK_SKEW = timedelta(minutes=5)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@operation
async def enqueue_action(
    store: GameStore,
    user_id: str,
    action_id: str,
    action: OfflineAction,
    created_at: datetime | None = None,
    *,
    now: datetime | None = None,
) -> OperationResult:
    """Queue an action for later replay. Re-queuing an ``action_id`` is a no-op.

    Neither ``created_at`` nor a daily-activity ``day`` may lie in the future.
    """
    if not action_id or not action_id.strip():
        raise InvalidArgumentError("action_id is required")
    now = now or datetime.now(timezone.utc)
    queued_at = _as_utc(created_at) if created_at else now
    if queued_at > now + CLOCK_SKEW:
        raise InvalidArgumentError(f"created_at {queued_at.isoformat()} is in the future")
    queued_at = min(queued_at, now)
    if isinstance(action, RecordDailyActivityAction) and action.day and action.day > now.date():
        raise InvalidArgumentError(f"Activity day {action.day.isoformat()} is in the future")

    async def work(tx: StoreTransaction) -> OperationResult:
        if await tx.get_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")

        existing = await tx.get_action(action_id)
        if existing is not None:
            if existing.user_id != user_id:
                raise InvalidArgumentError(f"action_id {action_id} belongs to another user")
            return OperationResult.ok(
                already_processed=True,
                action_id=action_id,
                action_type=existing.action_type,
                processed=existing.processed,
            )

        await tx.insert_action(QueuedAction(
            action_id=action_id,
            user_id=user_id,
            action_type=action.action_type,
            payload=payload_of(action),
            created_at=queued_at,
        ))
        return OperationResult.ok(action_id=action_id, action_type=action.action_type, processed=False)

    return await run_transaction(store, work)


@operation
async def dispatch_action(
    store: GameStore,
    queued: QueuedAction,
    *,
    now: datetime,
    redis: object = None,
) -> OperationResult:
    """Run one queued action through its operation."""
    action = parse_action(queued.action_type, queued.payload)
    match action:
        case AwardXpAction():
            return await award_xp(
                store,
                queued.user_id,
                action.amount,
                action.source,
                queued.action_id,
                action.metadata,
                now=now,
                redis=redis,
            )
        case RedeemGracePassAction():
            return await redeem_grace_pass(store, queued.user_id, queued.action_id, now=now)
        case RecordDailyActivityAction():
            day = min(action.day or (queued.created_at or now).date(), now.date())
            return await record_daily_activity(store, queued.user_id, day, now=now)
        case GiftBoosterAction():
            return await purchase_or_gift_booster(
                store,
                action.target_user_id,
                action.booster_type,
                queued.action_id,
                giver_id=queued.user_id,
                now=now,
                redis=redis,
            )
        case _:
            assert_never(action)


async def _mark_processed(store: GameStore, queued: QueuedAction, result: OperationResult, now: datetime) -> None:
    async def work(tx: StoreTransaction) -> None:
        await tx.mark_action_processed(queued.action_id, result.model_dump(mode="json"), now)

    await run_transaction(store, work)


@operation
async def process_queued_actions(
    store: GameStore,
    user_id: str,
    now: datetime | None = None,
    *,
    redis: object = None,
) -> OperationResult:
    """Drain ``user_id``'s queue oldest first."""
    now = now or datetime.now(timezone.utc)

    async with store.transaction() as tx:
        if await tx.get_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        pending = await tx.pending_actions(user_id)

    processed_count = 0
    failed_count = 0
    deferred = False
    outcomes: list[dict] = []

    for queued in pending:
        try:
            result = await dispatch_action(store, queued, now=now, redis=redis)
        except Exception:
            logger.exception("Offline action %s (%s) crashed", queued.action_id, queued.action_type)
            result = OperationResult(
                success=False,
                reason=INTERNAL_ERROR,
                message="Unexpected error while replaying action",
            )

        if result.is_transient_failure:
            logger.warning(
                "Offline replay for %s stopped at %s: %s",
                user_id, queued.action_id, result.message,
            )
            outcomes.append({"action_id": queued.action_id, "action_type": queued.action_type, "status": "deferred"})
            deferred = True
            break

        await _mark_processed(store, queued, result, now)
        processed_count += 1
        if not result.success:
            failed_count += 1
            logger.info(
                "Offline action %s dropped (%s): %s",
                queued.action_id, result.reason, result.message,
            )
        outcomes.append({
            "action_id": queued.action_id,
            "action_type": queued.action_type,
            "status": "ok" if result.success else "failed",
            "reason": result.reason,
            "already_processed": result.already_processed,
        })

    return OperationResult.ok(
        processed_count=processed_count,
        failed_count=failed_count,
        remaining=len(pending) - processed_count,
        deferred=deferred,
        outcomes=outcomes,
    )
