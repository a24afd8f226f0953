"""Daily streak tracking and grace-pass recovery."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

from sloop.errors import InsufficientResourceError, InvalidArgumentError
from sloop.progression.service import lock_user
from sloop.results import OperationResult, operation
from sloop.social.activity_service import MILESTONE_REACHED, record_activity
from sloop.storage.base import GameStore, QueuedAction, StoreTransaction, run_transaction

logger = logging.getLogger(__name__)

MILESTONE_INTERVAL = 7
# Broken streaks shorter than this are not worth offering a grace pass for
BROKEN_STREAK_NOTICE = 3


def is_milestone(streak: int) -> bool:
    return streak > 0 and streak % MILESTONE_INTERVAL == 0


@operation
async def record_daily_activity(
    store: GameStore,
    user_id: str,
    today: date | None = None,
    *,
    now: datetime | None = None,
) -> OperationResult:
    """Advance the user's daily streak. At most one effective call per UTC day.

    - same day as ``last_active_date``: no-op
    - the day after: ``streak += 1``
    - any later day: ``streak = 1``; the old value is kept for a grace pass
      and reported as broken when it was at least 3 days long

    Every weekly milestone arms the one-shot streak bonus. ``today`` may be
    earlier than the server date for replayed offline days, never later.
    """
    now = now or datetime.now(timezone.utc)
    today = today or now.date()
    if today > now.date():
        raise InvalidArgumentError(f"Activity day {today.isoformat()} is in the future")

    async def work(tx: StoreTransaction) -> OperationResult:
        user = await lock_user(tx, user_id)
        last = user.last_active_date

        if last is not None and last >= today:
            return OperationResult.ok(
                already_recorded=True,
                streak=user.streak,
                streak_broken=False,
                previous_streak=0,
                milestone=False,
                streak_bonus_armed=False,
            )

        streak_broken = False
        previous_streak = 0
        if last is not None and last == today - timedelta(days=1):
            streak = user.streak + 1
            streak_before_break = 0
        else:
            streak = 1
            streak_before_break = user.streak
            if user.streak >= BROKEN_STREAK_NOTICE:
                streak_broken = True
                previous_streak = user.streak

        milestone = is_milestone(streak)
        await tx.update_user(
            user_id,
            streak=streak,
            streak_before_break=streak_before_break,
            longest_streak=max(user.longest_streak, streak),
            last_active_date=today,
            has_streak_bonus=user.has_streak_bonus or milestone,
            updated_at=now,
        )
        await tx.increment_user(user_id, total_days_studied=1)

        if milestone:
            await record_activity(
                tx,
                user_id,
                MILESTONE_REACHED,
                f"Reached a {streak}-day streak",
                {"streak": streak},
                now,
            )

        if streak_broken:
            logger.info("User %s broke a %d-day streak", user_id, previous_streak)

        return OperationResult.ok(
            already_recorded=False,
            streak=streak,
            streak_broken=streak_broken,
            previous_streak=previous_streak,
            milestone=milestone,
            streak_bonus_armed=milestone,
        )

    return await run_transaction(store, work)


@operation
async def redeem_grace_pass(
    store: GameStore,
    user_id: str,
    action_id: str,
    *,
    now: datetime | None = None,
) -> OperationResult:
    """Spend one grace pass to restore a broken streak, once per ``action_id``.

    The redemption is recorded as a processed row in ``offline_actions``. If
    the action was queued offline, that same row is marked processed here so
    the pass can never be spent twice for one action.
    """
    if not action_id or not action_id.strip():
        raise InvalidArgumentError("action_id is required")
    now = now or datetime.now(timezone.utc)

    async def work(tx: StoreTransaction) -> OperationResult:
        user = await lock_user(tx, user_id)

        existing = await tx.get_action(action_id)
        if existing is not None and existing.user_id != user_id:
            raise InvalidArgumentError(f"action_id {action_id} belongs to another user")
        if existing is not None and existing.processed:
            return OperationResult.ok(
                already_processed=True,
                message="Already processed",
                streak=user.streak,
                grace_passes_remaining=user.grace_passes_available,
            )

        if user.grace_passes_available <= 0:
            raise InsufficientResourceError("No grace passes available")

        restored_from = user.streak_before_break
        if restored_from > 0:
            streak = restored_from + user.streak
        else:
            streak = user.streak if user.streak > 0 else 1

        await tx.increment_user(user_id, grace_passes_available=-1, grace_passes_used=1)
        await tx.update_user(
            user_id,
            streak=streak,
            streak_before_break=0,
            longest_streak=max(user.longest_streak, streak),
            updated_at=now,
        )

        result = OperationResult.ok(
            streak=streak,
            restored_from=restored_from,
            grace_passes_remaining=user.grace_passes_available - 1,
        )
        record = result.model_dump(mode="json")
        if existing is None:
            await tx.insert_action(QueuedAction(
                action_id=action_id,
                user_id=user_id,
                action_type="redeem_grace_pass",
                processed=True,
                result=record,
                created_at=now,
                processed_at=now,
            ))
        else:
            await tx.mark_action_processed(action_id, record, now)
        return result

    return await run_transaction(store, work)
