"""SQLAlchemy-backed ``GameStore``.

Each transaction owns one ``AsyncSession``. User rows are locked with
``SELECT ... FOR UPDATE`` when a service asks for ``for_update``; counters are
changed with SQL-side increments so concurrent writers never lose updates.
A unique-key violation raised at flush or commit is reported as
``ConflictError`` and the whole unit of work is retried by
``run_transaction``; on the retry the service sees the winning row and takes
its "already processed" path.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sloop.db.models import (
    Activity,
    Booster,
    Follow,
    LeagueSnapshot,
    OfflineAction,
    Purchase,
    UserProgress,
    XPLedger,
)
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

# serialization_failure, deadlock_detected
_TRANSIENT_SQLSTATES = frozenset({"40001", "40P01"})
_UNIQUE_VIOLATION = "23505"

_USER_COLUMNS = (
    "user_id", "name", "xp", "weekly_xp", "lifetime_xp", "level", "gems", "streak",
    "longest_streak", "streak_before_break", "last_active_date",
    "total_days_studied", "grace_passes_available", "grace_passes_used", "league",
    "league_position", "morning_bonus_date", "has_streak_bonus", "created_at", "updated_at",
)


def _utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything in the domain is UTC-aware."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _is_unique_violation(exc: IntegrityError) -> bool:
    return _sqlstate(exc) == _UNIQUE_VIOLATION or "UNIQUE constraint failed" in str(exc.orig)


def _is_transient(exc: DBAPIError) -> bool:
    return _sqlstate(exc) in _TRANSIENT_SQLSTATES or "database is locked" in str(exc.orig)


def _to_user(row: UserProgress) -> UserState:
    state = UserState(**{name: getattr(row, name) for name in _USER_COLUMNS})
    state.created_at = _utc(state.created_at)
    state.updated_at = _utc(state.updated_at)
    return state


def _to_ledger(row: XPLedger) -> LedgerEntry:
    return LedgerEntry(
        id=row.id,
        action_id=row.action_id,
        user_id=row.user_id,
        amount=row.amount,
        base_amount=row.base_amount,
        source=row.source,
        metadata=dict(row.entry_metadata or {}),
        created_at=_utc(row.created_at),
    )


def _to_booster(row: Booster) -> BoosterState:
    return BoosterState(
        id=row.id,
        action_id=row.action_id,
        user_id=row.user_id,
        booster_type=row.booster_type,
        expires_at=_utc(row.expires_at),
        is_active=row.is_active,
        giver_id=row.giver_id,
        created_at=_utc(row.created_at),
    )


def _to_action(row: OfflineAction) -> QueuedAction:
    return QueuedAction(
        id=row.id,
        action_id=row.action_id,
        user_id=row.user_id,
        action_type=row.action_type,
        payload=dict(row.payload or {}),
        processed=row.processed,
        result=row.result,
        created_at=_utc(row.created_at),
        processed_at=_utc(row.processed_at),
    )


def _to_activity(row: Activity) -> ActivityRecord:
    return ActivityRecord(
        id=row.id,
        user_id=row.user_id,
        activity_type=row.activity_type,
        details=row.details,
        metadata=dict(row.activity_metadata or {}),
        created_at=_utc(row.created_at),
    )


def _to_follow(row: Follow) -> FollowRecord:
    return FollowRecord(
        id=row.id,
        follower_id=row.follower_id,
        following_id=row.following_id,
        created_at=_utc(row.created_at),
    )


def _to_snapshot(row: LeagueSnapshot) -> LeagueSnapshotRecord:
    return LeagueSnapshotRecord(
        id=row.id,
        period_start=row.period_start,
        period_end=row.period_end,
        rankings=list(row.rankings),
        created_at=_utc(row.created_at),
    )


def _to_purchase(row: Purchase) -> PurchaseRecord:
    return PurchaseRecord(
        id=row.id,
        transaction_id=row.transaction_id,
        user_id=row.user_id,
        product_id=row.product_id,
        entitlements=list(row.entitlements or []),
        gems_granted=row.gems_granted,
        grace_passes_granted=row.grace_passes_granted,
        created_at=_utc(row.created_at),
    )


class SqlTransaction(StoreTransaction):
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    # --- users ---

    async def get_user(self, user_id: str, *, for_update: bool = False) -> UserState | None:
        stmt = (
            select(UserProgress)
            .where(UserProgress.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        row = (await self._db.execute(stmt)).scalar_one_or_none()
        return _to_user(row) if row else None

    async def insert_user(self, user: UserState) -> None:
        values = {name: getattr(user, name) for name in _USER_COLUMNS}
        # let server defaults fill unset timestamps
        row = UserProgress(**{k: v for k, v in values.items() if v is not None})
        self._db.add(row)
        await self._db.flush()

    async def update_user(self, user_id: str, **changes: Any) -> None:
        await self._db.execute(
            update(UserProgress)
            .where(UserProgress.user_id == user_id)
            .values(**changes)
            .execution_options(synchronize_session=False)
        )

    async def increment_user(self, user_id: str, **deltas: int) -> None:
        values = {name: getattr(UserProgress, name) + delta for name, delta in deltas.items()}
        await self._db.execute(
            update(UserProgress)
            .where(UserProgress.user_id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    async def list_users(self, league: int | None = None, *, for_update: bool = False) -> list[UserState]:
        stmt = select(UserProgress).execution_options(populate_existing=True)
        if league is not None:
            stmt = stmt.where(UserProgress.league == league)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._db.execute(stmt)
        return [_to_user(row) for row in result.scalars()]

    # --- xp ledger ---

    async def get_ledger_entry(self, action_id: str) -> LedgerEntry | None:
        result = await self._db.execute(select(XPLedger).where(XPLedger.action_id == action_id))
        row = result.scalar_one_or_none()
        return _to_ledger(row) if row else None

    async def insert_ledger_entry(self, entry: LedgerEntry) -> None:
        self._db.add(XPLedger(
            action_id=entry.action_id,
            user_id=entry.user_id,
            amount=entry.amount,
            base_amount=entry.base_amount,
            source=entry.source,
            entry_metadata=entry.metadata,
            created_at=entry.created_at,
        ))
        await self._db.flush()

    async def list_ledger(self, user_id: str, offset: int, limit: int) -> tuple[list[LedgerEntry], int]:
        total_result = await self._db.execute(
            select(func.count()).select_from(XPLedger).where(XPLedger.user_id == user_id)
        )
        total = total_result.scalar_one()

        result = await self._db.execute(
            select(XPLedger)
            .where(XPLedger.user_id == user_id)
            .order_by(XPLedger.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return [_to_ledger(row) for row in result.scalars()], total

    # --- boosters ---

    async def get_booster(self, action_id: str) -> BoosterState | None:
        result = await self._db.execute(select(Booster).where(Booster.action_id == action_id))
        row = result.scalar_one_or_none()
        return _to_booster(row) if row else None

    async def active_boosters(self, user_id: str, now: datetime) -> list[BoosterState]:
        result = await self._db.execute(
            select(Booster)
            .where(
                Booster.user_id == user_id,
                Booster.is_active.is_(True),
                Booster.expires_at > now,
            )
            .order_by(Booster.expires_at.desc(), Booster.id.desc())
            .execution_options(populate_existing=True)
        )
        return [_to_booster(row) for row in result.scalars()]

    async def insert_booster(self, booster: BoosterState) -> None:
        self._db.add(Booster(
            action_id=booster.action_id,
            user_id=booster.user_id,
            booster_type=booster.booster_type,
            expires_at=booster.expires_at,
            is_active=booster.is_active,
            giver_id=booster.giver_id,
            created_at=booster.created_at,
        ))
        await self._db.flush()

    async def deactivate_boosters(self, user_id: str, *, keep_action_id: str) -> int:
        result = await self._db.execute(
            update(Booster)
            .where(
                Booster.user_id == user_id,
                Booster.is_active.is_(True),
                Booster.action_id != keep_action_id,
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    # --- offline / processed actions ---

    async def get_action(self, action_id: str) -> QueuedAction | None:
        result = await self._db.execute(
            select(OfflineAction)
            .where(OfflineAction.action_id == action_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _to_action(row) if row else None

    async def insert_action(self, action: QueuedAction) -> None:
        self._db.add(OfflineAction(
            action_id=action.action_id,
            user_id=action.user_id,
            action_type=action.action_type,
            payload=action.payload,
            processed=action.processed,
            result=action.result,
            created_at=action.created_at,
            processed_at=action.processed_at,
        ))
        await self._db.flush()

    async def mark_action_processed(self, action_id: str, result: dict[str, Any], now: datetime) -> None:
        await self._db.execute(
            update(OfflineAction)
            .where(OfflineAction.action_id == action_id)
            .values(processed=True, result=result, processed_at=now)
            .execution_options(synchronize_session=False)
        )

    async def pending_actions(self, user_id: str) -> list[QueuedAction]:
        result = await self._db.execute(
            select(OfflineAction)
            .where(OfflineAction.user_id == user_id, OfflineAction.processed.is_(False))
            .order_by(OfflineAction.created_at.asc(), OfflineAction.id.asc())
        )
        return [_to_action(row) for row in result.scalars()]

    # --- activity feed ---

    async def add_activity(self, activity: ActivityRecord) -> None:
        self._db.add(Activity(
            user_id=activity.user_id,
            activity_type=activity.activity_type,
            details=activity.details,
            activity_metadata=activity.metadata,
            created_at=activity.created_at,
        ))
        await self._db.flush()

    async def list_activities(self, user_id: str, limit: int) -> list[ActivityRecord]:
        result = await self._db.execute(
            select(Activity)
            .where(Activity.user_id == user_id)
            .order_by(Activity.id.desc())
            .limit(limit)
        )
        return [_to_activity(row) for row in result.scalars()]

    async def list_followed_activities(self, follower_id: str, limit: int) -> list[ActivityRecord]:
        result = await self._db.execute(
            select(Activity)
            .join(Follow, Follow.following_id == Activity.user_id)
            .where(Follow.follower_id == follower_id)
            .order_by(Activity.created_at.desc(), Activity.id.desc())
            .limit(limit)
        )
        return [_to_activity(row) for row in result.scalars()]

    # --- follow graph ---

    async def get_follow(self, follower_id: str, following_id: str) -> FollowRecord | None:
        result = await self._db.execute(
            select(Follow).where(Follow.follower_id == follower_id, Follow.following_id == following_id)
        )
        row = result.scalar_one_or_none()
        return _to_follow(row) if row else None

    async def insert_follow(self, follow: FollowRecord) -> None:
        self._db.add(Follow(
            follower_id=follow.follower_id,
            following_id=follow.following_id,
            created_at=follow.created_at,
        ))
        await self._db.flush()

    async def delete_follow(self, follower_id: str, following_id: str) -> bool:
        result = await self._db.execute(
            delete(Follow)
            .where(Follow.follower_id == follower_id, Follow.following_id == following_id)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    async def list_following(self, follower_id: str) -> list[FollowRecord]:
        result = await self._db.execute(
            select(Follow).where(Follow.follower_id == follower_id).order_by(Follow.id.desc())
        )
        return [_to_follow(row) for row in result.scalars()]

    async def count_followers(self, user_id: str) -> int:
        result = await self._db.execute(
            select(func.count()).select_from(Follow).where(Follow.following_id == user_id)
        )
        return result.scalar_one()

    # --- league snapshots ---

    async def get_snapshot(self, period_start: date) -> LeagueSnapshotRecord | None:
        result = await self._db.execute(
            select(LeagueSnapshot).where(LeagueSnapshot.period_start == period_start)
        )
        row = result.scalar_one_or_none()
        return _to_snapshot(row) if row else None

    async def insert_snapshot(self, snapshot: LeagueSnapshotRecord) -> None:
        self._db.add(LeagueSnapshot(
            period_start=snapshot.period_start,
            period_end=snapshot.period_end,
            rankings=snapshot.rankings,
            created_at=snapshot.created_at,
        ))
        await self._db.flush()

    async def list_snapshots(self, limit: int) -> list[LeagueSnapshotRecord]:
        result = await self._db.execute(
            select(LeagueSnapshot).order_by(LeagueSnapshot.period_start.desc()).limit(limit)
        )
        return [_to_snapshot(row) for row in result.scalars()]

    # --- purchases ---

    async def get_purchase(self, transaction_id: str) -> PurchaseRecord | None:
        result = await self._db.execute(
            select(Purchase).where(Purchase.transaction_id == transaction_id)
        )
        row = result.scalar_one_or_none()
        return _to_purchase(row) if row else None

    async def insert_purchase(self, purchase: PurchaseRecord) -> None:
        self._db.add(Purchase(
            transaction_id=purchase.transaction_id,
            user_id=purchase.user_id,
            product_id=purchase.product_id,
            entitlements=purchase.entitlements,
            gems_granted=purchase.gems_granted,
            grace_passes_granted=purchase.grace_passes_granted,
            created_at=purchase.created_at,
        ))
        await self._db.flush()


class SqlGameStore(GameStore):
    """Production store on top of an async session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[StoreTransaction, None]:
        try:
            async with self._session_factory() as session, session.begin():
                yield SqlTransaction(session)
        except IntegrityError as exc:
            if _is_unique_violation(exc):
                raise ConflictError("Unique key taken by a concurrent writer") from exc
            raise
        except DBAPIError as exc:
            if _is_transient(exc):
                raise ConflictError("Transient storage conflict") from exc
            raise
