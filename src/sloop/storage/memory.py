"""In-process ``GameStore`` used by tests and local tooling.

One ``asyncio.Lock`` serialises transactions, which gives the same
observable behaviour as row locks on a single-node database. State is
deep-copied on entry and restored if the transaction body raises, so a
failed operation leaves no partial writes behind.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime
from typing import Any

from sloop.errors import ConflictError
from sloop.storage.base import (
    ActivityRecord,
    BoosterState,
    FollowRecord,
    GameStore,
    LeagueSnapshotRecord,
    LedgerEntry,
    PurchaseRecord,
    QueuedAction,
    StoreTransaction,
    UserState,
)

_USER_FIELDS = frozenset(f.name for f in fields(UserState))
_COUNTER_FIELDS = frozenset({
    "xp",
    "weekly_xp",
    "lifetime_xp",
    "gems",
    "streak",
    "total_days_studied",
    "grace_passes_available",
    "grace_passes_used",
})


@dataclass
class _MemoryState:
    users: dict[str, UserState] = field(default_factory=dict)
    ledger: dict[str, LedgerEntry] = field(default_factory=dict)
    boosters: dict[str, BoosterState] = field(default_factory=dict)
    actions: dict[str, QueuedAction] = field(default_factory=dict)
    activities: list[ActivityRecord] = field(default_factory=list)
    follows: dict[tuple[str, str], FollowRecord] = field(default_factory=dict)
    snapshots: dict[date, LeagueSnapshotRecord] = field(default_factory=dict)
    purchases: dict[str, PurchaseRecord] = field(default_factory=dict)
    next_id: int = 1

    def allocate_id(self) -> int:
        value = self.next_id
        self.next_id += 1
        return value


class MemoryTransaction(StoreTransaction):
    def __init__(self, state: _MemoryState) -> None:
        self._state = state

    # --- users ---

    async def get_user(self, user_id: str, *, for_update: bool = False) -> UserState | None:
        user = self._state.users.get(user_id)
        return replace(user) if user else None

    async def insert_user(self, user: UserState) -> None:
        if user.user_id in self._state.users:
            raise ConflictError(f"User {user.user_id} already exists")
        self._state.users[user.user_id] = replace(user)

    async def update_user(self, user_id: str, **changes: Any) -> None:
        user = self._state.users[user_id]
        unknown = set(changes) - _USER_FIELDS
        if unknown:
            raise KeyError(f"Unknown user fields: {sorted(unknown)}")
        for name, value in changes.items():
            setattr(user, name, value)

    async def increment_user(self, user_id: str, **deltas: int) -> None:
        user = self._state.users[user_id]
        for name, delta in deltas.items():
            if name not in _COUNTER_FIELDS:
                raise KeyError(f"{name} is not a counter")
            value = getattr(user, name) + delta
            if value < 0:
                raise ValueError(f"{name} would become negative for user {user_id}")
            setattr(user, name, value)

    async def list_users(self, league: int | None = None, *, for_update: bool = False) -> list[UserState]:
        return [
            replace(u)
            for u in self._state.users.values()
            if league is None or u.league == league
        ]

    # --- xp ledger ---

    async def get_ledger_entry(self, action_id: str) -> LedgerEntry | None:
        entry = self._state.ledger.get(action_id)
        return copy.deepcopy(entry) if entry else None

    async def insert_ledger_entry(self, entry: LedgerEntry) -> None:
        if entry.action_id in self._state.ledger:
            raise ConflictError(f"Ledger entry {entry.action_id} already exists")
        stored = copy.deepcopy(entry)
        stored.id = self._state.allocate_id()
        self._state.ledger[entry.action_id] = stored

    async def list_ledger(self, user_id: str, offset: int, limit: int) -> tuple[list[LedgerEntry], int]:
        entries = [e for e in self._state.ledger.values() if e.user_id == user_id]
        entries.sort(key=lambda e: e.id or 0, reverse=True)
        return [copy.deepcopy(e) for e in entries[offset:offset + limit]], len(entries)

    # --- boosters ---

    async def get_booster(self, action_id: str) -> BoosterState | None:
        booster = self._state.boosters.get(action_id)
        return replace(booster) if booster else None

    async def active_boosters(self, user_id: str, now: datetime) -> list[BoosterState]:
        active = [
            replace(b)
            for b in self._state.boosters.values()
            if b.user_id == user_id and b.is_active and b.expires_at > now
        ]
        active.sort(key=lambda b: (b.expires_at, b.id or 0), reverse=True)
        return active

    async def insert_booster(self, booster: BoosterState) -> None:
        if booster.action_id in self._state.boosters:
            raise ConflictError(f"Booster {booster.action_id} already exists")
        stored = replace(booster, id=self._state.allocate_id())
        self._state.boosters[booster.action_id] = stored

    async def deactivate_boosters(self, user_id: str, *, keep_action_id: str) -> int:
        count = 0
        for booster in self._state.boosters.values():
            if booster.user_id == user_id and booster.is_active and booster.action_id != keep_action_id:
                booster.is_active = False
                count += 1
        return count

    # --- offline / processed actions ---

    async def get_action(self, action_id: str) -> QueuedAction | None:
        action = self._state.actions.get(action_id)
        return copy.deepcopy(action) if action else None

    async def insert_action(self, action: QueuedAction) -> None:
        if action.action_id in self._state.actions:
            raise ConflictError(f"Action {action.action_id} already exists")
        stored = copy.deepcopy(action)
        stored.id = self._state.allocate_id()
        self._state.actions[action.action_id] = stored

    async def mark_action_processed(self, action_id: str, result: dict[str, Any], now: datetime) -> None:
        action = self._state.actions[action_id]
        action.processed = True
        action.result = copy.deepcopy(result)
        action.processed_at = now

    async def pending_actions(self, user_id: str) -> list[QueuedAction]:
        pending = [
            copy.deepcopy(a)
            for a in self._state.actions.values()
            if a.user_id == user_id and not a.processed
        ]
        pending.sort(key=lambda a: (a.created_at.timestamp() if a.created_at else 0.0, a.id or 0))
        return pending

    # --- activity feed ---

    async def add_activity(self, activity: ActivityRecord) -> None:
        stored = copy.deepcopy(activity)
        stored.id = self._state.allocate_id()
        self._state.activities.append(stored)

    async def list_activities(self, user_id: str, limit: int) -> list[ActivityRecord]:
        mine = [a for a in self._state.activities if a.user_id == user_id]
        mine.sort(key=lambda a: a.id or 0, reverse=True)
        return [copy.deepcopy(a) for a in mine[:limit]]

    async def list_followed_activities(self, follower_id: str, limit: int) -> list[ActivityRecord]:
        followed = {f.following_id for f in self._state.follows.values() if f.follower_id == follower_id}
        feed = [a for a in self._state.activities if a.user_id in followed]
        feed.sort(key=lambda a: (a.created_at.timestamp() if a.created_at else 0.0, a.id or 0), reverse=True)
        return [copy.deepcopy(a) for a in feed[:limit]]

    # --- follow graph ---

    async def get_follow(self, follower_id: str, following_id: str) -> FollowRecord | None:
        follow = self._state.follows.get((follower_id, following_id))
        return replace(follow) if follow else None

    async def insert_follow(self, follow: FollowRecord) -> None:
        key = (follow.follower_id, follow.following_id)
        if key in self._state.follows:
            raise ConflictError(f"{follow.follower_id} already follows {follow.following_id}")
        self._state.follows[key] = replace(follow, id=self._state.allocate_id())

    async def delete_follow(self, follower_id: str, following_id: str) -> bool:
        return self._state.follows.pop((follower_id, following_id), None) is not None

    async def list_following(self, follower_id: str) -> list[FollowRecord]:
        mine = [replace(f) for f in self._state.follows.values() if f.follower_id == follower_id]
        mine.sort(key=lambda f: f.id or 0, reverse=True)
        return mine

    async def count_followers(self, user_id: str) -> int:
        return sum(1 for f in self._state.follows.values() if f.following_id == user_id)

    # --- league snapshots ---

    async def get_snapshot(self, period_start: date) -> LeagueSnapshotRecord | None:
        snapshot = self._state.snapshots.get(period_start)
        return copy.deepcopy(snapshot) if snapshot else None

    async def insert_snapshot(self, snapshot: LeagueSnapshotRecord) -> None:
        if snapshot.period_start in self._state.snapshots:
            raise ConflictError(f"Snapshot for {snapshot.period_start} already exists")
        stored = copy.deepcopy(snapshot)
        stored.id = self._state.allocate_id()
        self._state.snapshots[snapshot.period_start] = stored

    async def list_snapshots(self, limit: int) -> list[LeagueSnapshotRecord]:
        ordered = sorted(self._state.snapshots.values(), key=lambda s: s.period_start, reverse=True)
        return [copy.deepcopy(s) for s in ordered[:limit]]

    # --- purchases ---

    async def get_purchase(self, transaction_id: str) -> PurchaseRecord | None:
        purchase = self._state.purchases.get(transaction_id)
        return copy.deepcopy(purchase) if purchase else None

    async def insert_purchase(self, purchase: PurchaseRecord) -> None:
        if purchase.transaction_id in self._state.purchases:
            raise ConflictError(f"Purchase {purchase.transaction_id} already recorded")
        stored = copy.deepcopy(purchase)
        stored.id = self._state.allocate_id()
        self._state.purchases[purchase.transaction_id] = stored


class MemoryGameStore(GameStore):
    """Dict-backed store with all-or-nothing transactions."""

    def __init__(self) -> None:
        self._state = _MemoryState()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[StoreTransaction, None]:
        async with self._lock:
            backup = copy.deepcopy(self._state)
            try:
                yield MemoryTransaction(self._state)
            except BaseException:
                self._state = backup
                raise
