"""Weekly league ranking: promotion, relegation and the global ladder.

Pure functions only. ``rank_and_reassign`` decides every member's next
league and global rank; persistence lives in ``leagues.service``.

Leagues are walked from Diamond down to Bronze so that the global rank
counter puts every member of a higher league above every member of a lower
one, whatever their weekly XP.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

BRONZE, SILVER, GOLD, DIAMOND = 1, 2, 3, 4

LEAGUE_NAMES: dict[int, str] = {
    BRONZE: "Bronze",
    SILVER: "Silver",
    GOLD: "Gold",
    DIAMOND: "Diamond",
}

# Nominal league sizes. Only used for the relegation cutoff, not a membership cap.
LEAGUE_CAPACITY: dict[int, int] = {BRONZE: 50, SILVER: 30, GOLD: 20, DIAMOND: 10}

PROMOTION_SLOTS = 3
PROMOTION_MIN_WEEKLY_XP = 500
RELEGATION_ZONE = 5

TIMEFRAMES = frozenset({"weekly", "monthly", "lifetime"})


@dataclass(frozen=True)
class LeagueMember:
    user_id: str
    name: str
    league: int
    weekly_xp: int
    xp: int
    lifetime_xp: int = 0


@dataclass(frozen=True)
class LeagueDecision:
    user_id: str
    name: str
    weekly_xp: int
    old_league: int
    new_league: int
    position: int
    rank: int

    @property
    def promoted(self) -> bool:
        return self.new_league > self.old_league

    @property
    def relegated(self) -> bool:
        return self.new_league < self.old_league

    def as_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "weekly_xp": self.weekly_xp,
            "old_league": self.old_league,
            "new_league": self.new_league,
            "rank": self.rank,
        }


def in_league_sort_key(member: LeagueMember) -> tuple[int, int, str]:
    """weekly_xp DESC, xp DESC, then user_id for a stable order."""
    return (-member.weekly_xp, -member.xp, member.user_id)


def decide_league(league: int, position: int, weekly_xp: int) -> int:
    """Next league for the member at ``position`` (1-based) within ``league``."""
    if league < DIAMOND and position <= PROMOTION_SLOTS and weekly_xp >= PROMOTION_MIN_WEEKLY_XP:
        return league + 1
    if league > BRONZE and position > LEAGUE_CAPACITY[league] - RELEGATION_ZONE:
        return league - 1
    return league


def rank_and_reassign(members: Iterable[LeagueMember]) -> list[LeagueDecision]:
    """Rank all members and decide promotions/relegations.

    Returns decisions in global rank order (Diamond first).
    """
    by_league: dict[int, list[LeagueMember]] = {league: [] for league in LEAGUE_NAMES}
    for member in members:
        if member.league not in by_league:
            raise ValueError(f"Member {member.user_id} has invalid league {member.league}")
        by_league[member.league].append(member)

    decisions: list[LeagueDecision] = []
    rank = 1
    for league in sorted(by_league, reverse=True):
        ranked = sorted(by_league[league], key=in_league_sort_key)
        for position, member in enumerate(ranked, start=1):
            decisions.append(LeagueDecision(
                user_id=member.user_id,
                name=member.name,
                weekly_xp=member.weekly_xp,
                old_league=league,
                new_league=decide_league(league, position, member.weekly_xp),
                position=position,
                rank=rank,
            ))
            rank += 1
    return decisions


def leaderboard_sort_key(timeframe: str) -> Callable[[LeagueMember], tuple]:
    """League always dominates score: a Diamond member outranks any Gold member."""
    if timeframe not in TIMEFRAMES:
        raise ValueError(f"Unknown timeframe: {timeframe}")
    if timeframe == "weekly":
        return lambda m: (-m.league, -m.weekly_xp, -m.xp, m.user_id)
    return lambda m: (-m.league, -m.lifetime_xp, m.user_id)
