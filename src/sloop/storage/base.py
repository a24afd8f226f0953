"""Storage interface shared by the SQL store and the in-memory store.

Game services never touch the ORM directly. They open a transaction on an
injected ``GameStore`` and call the narrow methods below, so every operation
can run against PostgreSQL in production and against ``MemoryGameStore`` in
tests with identical semantics.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, TypeVar

from sloop.config import get_settings
from sloop.errors import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass
class UserState:
    user_id: str
    name: str
    xp: int = 0
    weekly_xp: int = 0
    lifetime_xp: int = 0
    level: int = 1
    gems: int = 50
    streak: int = 0
    longest_streak: int = 0
    streak_before_break: int = 0
    last_active_date: date | None = None
    total_days_studied: int = 0
    grace_passes_available: int = 1
    grace_passes_used: int = 0
    league: int = 1
    league_position: int = 0
    morning_bonus_date: date | None = None
    has_streak_bonus: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class LedgerEntry:
    action_id: str
    user_id: str
    amount: int
    base_amount: int
    source: str
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    id: int | None = None


@dataclass
class BoosterState:
    action_id: str
    user_id: str
    booster_type: str
    expires_at: datetime
    is_active: bool = True
    giver_id: str | None = None
    created_at: datetime | None = None
    id: int | None = None


@dataclass
class QueuedAction:
    action_id: str
    user_id: str
    action_type: str
    payload: dict[str, Any] = field(default_factory=dict)
    processed: bool = False
    result: dict[str, Any] | None = None
    created_at: datetime | None = None
    processed_at: datetime | None = None
    id: int | None = None


@dataclass
class ActivityRecord:
    user_id: str
    activity_type: str
    details: str
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    id: int | None = None


@dataclass
class FollowRecord:
    follower_id: str
    following_id: str
    created_at: datetime | None = None
    id: int | None = None


@dataclass
class LeagueSnapshotRecord:
    period_start: date
    period_end: date
    rankings: list[dict[str, Any]]
    created_at: datetime | None = None
    id: int | None = None


@dataclass
class PurchaseRecord:
    transaction_id: str
    user_id: str
    product_id: str
    entitlements: list[str] = field(default_factory=list)
    gems_granted: int = 0
    grace_passes_granted: int = 0
    created_at: datetime | None = None
    id: int | None = None


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------


class StoreTransaction(ABC):
    """Unit of work. All calls made on one instance commit or roll back together.

    ``insert_*`` methods raise ``ConflictError`` when a unique key (action id,
    transaction id, period start) is already taken by a concurrent writer.
    ``increment_user`` applies deltas atomically in the store, never as a
    read-modify-write in the caller.
    """

    # --- users ---

    @abstractmethod
    async def get_user(self, user_id: str, *, for_update: bool = False) -> UserState | None: ...

    @abstractmethod
    async def insert_user(self, user: UserState) -> None: ...

    @abstractmethod
    async def update_user(self, user_id: str, **changes: Any) -> None: ...

    @abstractmethod
    async def increment_user(self, user_id: str, **deltas: int) -> None: ...

    @abstractmethod
    async def list_users(self, league: int | None = None, *, for_update: bool = False) -> list[UserState]: ...

    # --- xp ledger ---

    @abstractmethod
    async def get_ledger_entry(self, action_id: str) -> LedgerEntry | None: ...

    @abstractmethod
    async def insert_ledger_entry(self, entry: LedgerEntry) -> None: ...

    @abstractmethod
    async def list_ledger(self, user_id: str, offset: int, limit: int) -> tuple[list[LedgerEntry], int]: ...

    # --- boosters ---

    @abstractmethod
    async def get_booster(self, action_id: str) -> BoosterState | None: ...

    @abstractmethod
    async def active_boosters(self, user_id: str, now: datetime) -> list[BoosterState]:
        """Non-expired active boosters, latest expiry first."""

    @abstractmethod
    async def insert_booster(self, booster: BoosterState) -> None: ...

    @abstractmethod
    async def deactivate_boosters(self, user_id: str, *, keep_action_id: str) -> int: ...

    # --- offline / processed actions ---

    @abstractmethod
    async def get_action(self, action_id: str) -> QueuedAction | None: ...

    @abstractmethod
    async def insert_action(self, action: QueuedAction) -> None: ...

    @abstractmethod
    async def mark_action_processed(self, action_id: str, result: dict[str, Any], now: datetime) -> None: ...

    @abstractmethod
    async def pending_actions(self, user_id: str) -> list[QueuedAction]:
        """Unprocessed actions for a user, oldest first."""

    # --- activity feed ---

    @abstractmethod
    async def add_activity(self, activity: ActivityRecord) -> None: ...

    @abstractmethod
    async def list_activities(self, user_id: str, limit: int) -> list[ActivityRecord]: ...

    @abstractmethod
    async def list_followed_activities(self, follower_id: str, limit: int) -> list[ActivityRecord]:
        """Activities of everyone ``follower_id`` follows, newest first."""

    # --- follow graph ---

    @abstractmethod
    async def get_follow(self, follower_id: str, following_id: str) -> FollowRecord | None: ...

    @abstractmethod
    async def insert_follow(self, follow: FollowRecord) -> None: ...

    @abstractmethod
    async def delete_follow(self, follower_id: str, following_id: str) -> bool: ...

    @abstractmethod
    async def list_following(self, follower_id: str) -> list[FollowRecord]:
        """Newest follow first."""

    @abstractmethod
    async def count_followers(self, user_id: str) -> int: ...

    # --- league snapshots ---

    @abstractmethod
    async def get_snapshot(self, period_start: date) -> LeagueSnapshotRecord | None: ...

    @abstractmethod
    async def insert_snapshot(self, snapshot: LeagueSnapshotRecord) -> None: ...

    @abstractmethod
    async def list_snapshots(self, limit: int) -> list[LeagueSnapshotRecord]: ...

    # --- purchases ---

    @abstractmethod
    async def get_purchase(self, transaction_id: str) -> PurchaseRecord | None: ...

    @abstractmethod
    async def insert_purchase(self, purchase: PurchaseRecord) -> None: ...


class GameStore(ABC):
    """Factory for transactions against one backing store."""

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[StoreTransaction]: ...


async def run_transaction(
    store: GameStore,
    work: Callable[[StoreTransaction], Awaitable[T]],
    *,
    retries: int | None = None,
    backoff_ms: int | None = None,
) -> T:
    """Run ``work`` in a fresh transaction, retrying on ``ConflictError``.

    ``work`` must be safe to re-run from scratch: everything it did in the
    failed attempt has been rolled back.
    """
    settings = get_settings()
    if retries is None:
        retries = settings.transaction_retries
    if backoff_ms is None:
        backoff_ms = settings.transaction_backoff_ms

    attempt = 0
    while True:
        try:
            async with store.transaction() as tx:
                return await work(tx)
        except ConflictError:
            if attempt >= retries:
                raise
            delay = backoff_ms * (2**attempt) / 1000
            logger.info("Transaction conflict, retrying in %.3fs (attempt %d)", delay, attempt + 1)
            attempt += 1
            await asyncio.sleep(delay)
