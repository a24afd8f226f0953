"""ORM models for the game-economy schema.

These models map to tables created by the Alembic migrations in
alembic/versions. JSON columns use JSONB on PostgreSQL and plain JSON
elsewhere so the SQL store can also run on SQLite in tests.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from sloop.db.base import Base

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ---------------------------------------------------------------------------
# User progression
# ---------------------------------------------------------------------------


class UserProgress(Base):
    """One row per user: XP, currency, streak and league standing."""

    __tablename__ = "user_progress"
    __table_args__ = (
        CheckConstraint("xp >= 0", name="ck_user_progress_xp"),
        CheckConstraint("weekly_xp >= 0", name="ck_user_progress_weekly_xp"),
        CheckConstraint("lifetime_xp >= 0", name="ck_user_progress_lifetime_xp"),
        CheckConstraint("gems >= 0", name="ck_user_progress_gems"),
        CheckConstraint("streak >= 0", name="ck_user_progress_streak"),
        CheckConstraint("grace_passes_available >= 0", name="ck_user_progress_grace_passes"),
        CheckConstraint("league BETWEEN 1 AND 4", name="ck_user_progress_league"),
        Index("idx_user_progress_league_weekly", "league", "weekly_xp"),
    )

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    xp: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0")
    weekly_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0")
    lifetime_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0")
    level: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    gems: Mapped[int] = mapped_column(Integer, nullable=False, server_default="50")
    streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    streak_before_break: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    last_active_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    total_days_studied: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    grace_passes_available: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    grace_passes_used: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    league: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    league_position: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    morning_bonus_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    has_streak_bonus: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# XP ledger
# ---------------------------------------------------------------------------


class XPLedger(Base):
    """Immutable XP transaction log. ``action_id`` is the idempotency key."""

    __tablename__ = "xp_ledger"
    __table_args__ = (Index("idx_xp_ledger_user", "user_id", "id"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    action_id: Mapped[str] = mapped_column(String(256), unique=True, nullable=False)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("user_progress.user_id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    base_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(128), nullable=False)
    entry_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Boosters
# ---------------------------------------------------------------------------


class Booster(Base):
    """Time-limited XP multiplier owned by ``user_id``."""

    __tablename__ = "boosters"
    __table_args__ = (
        CheckConstraint("booster_type IN ('2x', '3x')", name="ck_boosters_type"),
        Index("idx_boosters_user_active", "user_id", "is_active", "expires_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    action_id: Mapped[str] = mapped_column(String(256), unique=True, nullable=False)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("user_progress.user_id", ondelete="CASCADE"), nullable=False
    )
    booster_type: Mapped[str] = mapped_column(String(4), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true")
    giver_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("user_progress.user_id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Offline actions (queue + processed-action idempotency record)
# ---------------------------------------------------------------------------


class OfflineAction(Base):
    """Queued or processed client action, unique per ``action_id``."""

    __tablename__ = "offline_actions"
    __table_args__ = (Index("idx_offline_actions_pending", "user_id", "processed", "created_at"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    action_id: Mapped[str] = mapped_column(String(256), unique=True, nullable=False)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("user_progress.user_id", ondelete="CASCADE"), nullable=False
    )
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    result: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Social activity feed
# ---------------------------------------------------------------------------


class Activity(Base):
    """Feed entry visible to the user's friends."""

    __tablename__ = "activities"
    __table_args__ = (
        CheckConstraint(
            "activity_type IN ('challenge_completed', 'milestone_reached', 'league_promoted', 'booster_gifted')",
            name="ck_activities_type",
        ),
        Index("idx_activities_user", "user_id", "id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("user_progress.user_id", ondelete="CASCADE"), nullable=False
    )
    activity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    details: Mapped[str] = mapped_column(Text, nullable=False)
    activity_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Follow(Base):
    """Directed follow edge; the follower sees the followed user's activities."""

    __tablename__ = "follows"
    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", name="uq_follows_pair"),
        CheckConstraint("follower_id <> following_id", name="ck_follows_not_self"),
        Index("idx_follows_following", "following_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    follower_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("user_progress.user_id", ondelete="CASCADE"), nullable=False
    )
    following_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("user_progress.user_id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# League snapshots
# ---------------------------------------------------------------------------


class LeagueSnapshot(Base):
    """Result of one weekly league run. One row per period, never updated."""

    __tablename__ = "league_snapshots"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    period_start: Mapped[date] = mapped_column(Date, unique=True, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    rankings: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Purchases
# ---------------------------------------------------------------------------


class Purchase(Base):
    """Entitlement grant for one payment-provider transaction."""

    __tablename__ = "purchases"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    transaction_id: Mapped[str] = mapped_column(String(256), unique=True, nullable=False)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("user_progress.user_id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    entitlements: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    gems_granted: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    grace_passes_granted: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
