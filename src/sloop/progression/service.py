"""XP awards with idempotency, bonuses and level-up detection."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sloop.errors import InvalidArgumentError, NotFoundError
from sloop.events import LEVEL_UP_CHANNEL, publish
from sloop.progression.bonuses import apply_bonuses
from sloop.progression.levels import MAX_XP_AWARD, compute_level, gems_for
from sloop.results import OperationResult, operation
from sloop.social.activity_service import CHALLENGE_COMPLETED, record_activity
from sloop.storage.base import GameStore, LedgerEntry, StoreTransaction, UserState, run_transaction

logger = logging.getLogger(__name__)

MAX_PER_PAGE = 100


def _validate_award(base_amount: int, source: str, action_id: str) -> None:
    if not isinstance(base_amount, int) or isinstance(base_amount, bool):
        raise InvalidArgumentError("XP amount must be an integer")
    if base_amount < 0:
        raise InvalidArgumentError("XP amount cannot be negative")
    if base_amount > MAX_XP_AWARD:
        raise InvalidArgumentError(f"XP amount cannot exceed {MAX_XP_AWARD}")
    if not source or not source.strip():
        raise InvalidArgumentError("XP source is required")
    if not action_id or not action_id.strip():
        raise InvalidArgumentError("action_id is required")


async def lock_user(tx: StoreTransaction, user_id: str) -> UserState:
    """Load and row-lock a user, or raise ``NotFoundError``."""
    user = await tx.get_user(user_id, for_update=True)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


@operation
async def award_xp(
    store: GameStore,
    user_id: str,
    base_amount: int,
    source: str,
    action_id: str,
    metadata: dict[str, Any] | None = None,
    *,
    now: datetime | None = None,
    redis: object = None,
) -> OperationResult:
    """Grant XP once per ``action_id``.

    In one transaction:
    1. Lock the user row and check the ledger for ``action_id``
    2. Apply morning, streak and booster bonuses (consuming one-shot permits)
    3. Insert the ledger entry and increment xp, weekly_xp, lifetime_xp, gems
    4. Recompute level and write a feed entry

    A replayed ``action_id`` is a success with ``already_processed`` set and
    no mutation.
    """
    _validate_award(base_amount, source, action_id)
    now = now or datetime.now(timezone.utc)

    async def work(tx: StoreTransaction) -> tuple[OperationResult, dict | None]:
        user = await lock_user(tx, user_id)

        if await tx.get_ledger_entry(action_id) is not None:
            return OperationResult.ok(
                already_processed=True,
                message="Already processed",
                xp_awarded=0,
                new_level=user.level,
            ), None

        boosters = await tx.active_boosters(user_id, now)
        breakdown = apply_bonuses(base_amount, user, boosters[0] if boosters else None, now)
        final = breakdown.final_amount
        gems = gems_for(final)

        await tx.insert_ledger_entry(LedgerEntry(
            action_id=action_id,
            user_id=user_id,
            amount=final,
            base_amount=base_amount,
            source=source,
            metadata={**(metadata or {}), "bonuses": breakdown.as_dict()},
            created_at=now,
        ))
        await tx.increment_user(user_id, xp=final, weekly_xp=final, lifetime_xp=final, gems=gems)

        new_level = compute_level(user.xp + final)
        changes: dict[str, Any] = {"level": new_level, "updated_at": now}
        if breakdown.morning:
            changes["morning_bonus_date"] = now.date()
        if breakdown.streak:
            changes["has_streak_bonus"] = False
        await tx.update_user(user_id, **changes)

        await record_activity(
            tx,
            user_id,
            CHALLENGE_COMPLETED,
            f"Earned {final} XP from {source}",
            {"action_id": action_id, "xp": final, "source": source},
            now,
        )

        leveled_up = new_level > user.level
        result = OperationResult.ok(
            xp_awarded=final,
            base_amount=base_amount,
            new_level=new_level,
            gems_earned=gems,
            leveled_up=leveled_up,
            bonuses=breakdown.as_dict(),
        )
        event = None
        if leveled_up:
            event = {"user_id": user_id, "old_level": user.level, "new_level": new_level}
        return result, event

    result, level_up = await run_transaction(store, work)
    if level_up is not None:
        logger.info("User %s reached level %d", user_id, level_up["new_level"])
        await publish(redis, LEVEL_UP_CHANNEL, level_up)
    return result


@operation
async def enable_streak_bonus(store: GameStore, user_id: str, *, now: datetime | None = None) -> OperationResult:
    """Arm the one-shot streak bonus outside a milestone. Operator use only.

    Re-arming an armed bonus is a no-op.
    """
    now = now or datetime.now(timezone.utc)

    async def work(tx: StoreTransaction) -> OperationResult:
        user = await lock_user(tx, user_id)
        if user.has_streak_bonus:
            return OperationResult.ok(already_processed=True, has_streak_bonus=True)
        await tx.update_user(user_id, has_streak_bonus=True, updated_at=now)
        return OperationResult.ok(has_streak_bonus=True)

    return await run_transaction(store, work)


def ledger_entry_dict(entry: LedgerEntry) -> dict[str, Any]:
    return {
        "action_id": entry.action_id,
        "amount": entry.amount,
        "base_amount": entry.base_amount,
        "source": entry.source,
        "metadata": entry.metadata,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


@operation
async def get_xp_history(
    store: GameStore,
    user_id: str,
    page: int = 1,
    per_page: int = 20,
) -> OperationResult:
    """Paginated XP ledger, newest first."""
    if page < 1:
        raise InvalidArgumentError("page must be >= 1")
    if not 1 <= per_page <= MAX_PER_PAGE:
        raise InvalidArgumentError(f"per_page must be between 1 and {MAX_PER_PAGE}")

    async with store.transaction() as tx:
        if await tx.get_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        entries, total = await tx.list_ledger(user_id, (page - 1) * per_page, per_page)

    return OperationResult.ok(
        entries=[ledger_entry_dict(e) for e in entries],
        total=total,
        page=page,
        per_page=per_page,
    )
