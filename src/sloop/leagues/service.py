"""Weekly league job, leaderboard and snapshot history."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sloop.errors import InvalidArgumentError
from sloop.events import LEAGUE_UPDATE_CHANNEL, publish
from sloop.leagues.ranking import (
    LEAGUE_NAMES,
    TIMEFRAMES,
    LeagueMember,
    leaderboard_sort_key,
    rank_and_reassign,
)
from sloop.leagues.week_utils import get_previous_week, get_week_iso
from sloop.results import OperationResult, operation
from sloop.social.activity_service import LEAGUE_PROMOTED, record_activity
from sloop.storage.base import (
    GameStore,
    LeagueSnapshotRecord,
    StoreTransaction,
    UserState,
    run_transaction,
)

logger = logging.getLogger(__name__)

MAX_SNAPSHOTS = 52


def _member(user: UserState) -> LeagueMember:
    return LeagueMember(
        user_id=user.user_id,
        name=user.name,
        league=user.league,
        weekly_xp=user.weekly_xp,
        xp=user.xp,
        lifetime_xp=user.lifetime_xp,
    )


def _summary(snapshot: LeagueSnapshotRecord) -> dict:
    rankings = snapshot.rankings
    return {
        "week": get_week_iso(snapshot.period_start),
        "period_start": snapshot.period_start.isoformat(),
        "period_end": snapshot.period_end.isoformat(),
        "users_processed": len(rankings),
        "promoted": sum(1 for r in rankings if r["new_league"] > r["old_league"]),
        "relegated": sum(1 for r in rankings if r["new_league"] < r["old_league"]),
        "rankings": rankings,
    }


@operation
async def run_weekly_league_update(
    store: GameStore,
    now: datetime | None = None,
    *,
    redis: object = None,
) -> OperationResult:
    """Close the ISO week before ``now``: rank, promote/relegate, reset, snapshot.

    Runs as one transaction with every user row locked, so no request can
    interleave with the rewrite. A snapshot for the period means the week is
    already closed; a concurrent second run loses on the unique
    ``period_start`` and, on retry, reports ``already_processed``.
    """
    now = now or datetime.now(timezone.utc)
    period_start, period_end = get_previous_week(now)

    async def work(tx: StoreTransaction) -> OperationResult:
        existing = await tx.get_snapshot(period_start)
        if existing is not None:
            return OperationResult.ok(already_processed=True, message="Period already processed", **_summary(existing))

        users = await tx.list_users(for_update=True)
        decisions = rank_and_reassign(_member(u) for u in users)

        for decision in decisions:
            await tx.update_user(
                decision.user_id,
                league=decision.new_league,
                league_position=decision.rank,
                weekly_xp=0,
                morning_bonus_date=None,
                updated_at=now,
            )
            if decision.promoted:
                await record_activity(
                    tx,
                    decision.user_id,
                    LEAGUE_PROMOTED,
                    f"Promoted to {LEAGUE_NAMES[decision.new_league]} league",
                    {
                        "from_league": decision.old_league,
                        "to_league": decision.new_league,
                        "period_start": period_start.isoformat(),
                    },
                    now,
                )

        snapshot = LeagueSnapshotRecord(
            period_start=period_start,
            period_end=period_end,
            rankings=[d.as_dict() for d in decisions],
            created_at=now,
        )
        await tx.insert_snapshot(snapshot)
        return OperationResult.ok(**_summary(snapshot))

    result = await run_transaction(store, work)
    if not result.already_processed:
        logger.info(
            "League week %s closed: %d users, %d promoted, %d relegated",
            result.data["period_start"],
            result.data["users_processed"],
            result.data["promoted"],
            result.data["relegated"],
        )
        await publish(redis, LEAGUE_UPDATE_CHANNEL, {
            "period_start": result.data["period_start"],
            "period_end": result.data["period_end"],
            "users_processed": result.data["users_processed"],
        })
    return result


@operation
async def get_leaderboard(
    store: GameStore,
    league: int | None = None,
    timeframe: str = "weekly",
    limit: int | None = None,
) -> OperationResult:
    """Members ordered by league, then by the timeframe's XP column.

    ``monthly`` and ``lifetime`` both rank on ``lifetime_xp``; there is no
    separate monthly counter.
    """
    if timeframe not in TIMEFRAMES:
        raise InvalidArgumentError(f"Unknown timeframe: {timeframe}")
    if league is not None and league not in LEAGUE_NAMES:
        raise InvalidArgumentError(f"League must be between 1 and 4, got {league}")
    if limit is not None and limit < 1:
        raise InvalidArgumentError("limit must be positive")

    async with store.transaction() as tx:
        users = await tx.list_users(league)

    ordered = sorted((_member(u) for u in users), key=leaderboard_sort_key(timeframe))
    if limit is not None:
        ordered = ordered[:limit]
    positions = {u.user_id: u.league_position for u in users}

    entries = [
        {
            "rank": rank,
            "user_id": m.user_id,
            "name": m.name,
            "xp": m.xp,
            "weekly_xp": m.weekly_xp,
            "lifetime_xp": m.lifetime_xp,
            "league": m.league,
            "league_name": LEAGUE_NAMES[m.league],
            "league_position": positions[m.user_id],
        }
        for rank, m in enumerate(ordered, start=1)
    ]
    return OperationResult.ok(timeframe=timeframe, league=league, entries=entries)


@operation
async def get_league_snapshots(store: GameStore, limit: int = 10) -> OperationResult:
    """Most recent weekly results first."""
    if not 1 <= limit <= MAX_SNAPSHOTS:
        raise InvalidArgumentError(f"limit must be between 1 and {MAX_SNAPSHOTS}")
    async with store.transaction() as tx:
        snapshots = await tx.list_snapshots(limit)
    return OperationResult.ok(snapshots=[_summary(s) for s in snapshots])
