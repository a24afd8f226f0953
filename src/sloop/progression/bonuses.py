"""Bonus pipeline for XP awards.

Bonuses compound multiplicatively in a fixed order:

1. morning bonus (x1.5, floored) when the award lands in [06:00, 09:00) UTC
   and today's morning permit is unused;
2. one-shot streak bonus (x2);
3. the active booster with the latest expiry (x2 or x3).

Only the morning step floors; the later steps multiply integers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time

from sloop.boosters.catalog import BOOSTER_MULTIPLIERS
from sloop.storage.base import BoosterState, UserState

MORNING_START = time(6, 0)
MORNING_END = time(9, 0)


@dataclass(frozen=True)
class BonusBreakdown:
    base_amount: int
    final_amount: int
    morning: bool = False
    streak: bool = False
    booster: str | None = None

    def as_dict(self) -> dict:
        return {"morning": self.morning, "streak": self.streak, "booster": self.booster}


def is_morning_window(now: datetime) -> bool:
    """``now`` must be UTC."""
    return MORNING_START <= now.time() < MORNING_END


def morning_permit_available(user: UserState, today: date) -> bool:
    return user.morning_bonus_date != today


def apply_bonuses(
    base_amount: int,
    user: UserState,
    booster: BoosterState | None,
    now: datetime,
) -> BonusBreakdown:
    """Compute the final amount. Pure: the caller persists consumed permits."""
    amount = base_amount
    morning = False
    streak = False
    booster_type = None

    if is_morning_window(now) and morning_permit_available(user, now.date()):
        amount = amount * 3 // 2
        morning = True

    if user.has_streak_bonus:
        amount *= 2
        streak = True

    if booster is not None and booster.expires_at > now:
        amount *= BOOSTER_MULTIPLIERS[booster.booster_type]
        booster_type = booster.booster_type

    return BonusBreakdown(
        base_amount=base_amount,
        final_amount=amount,
        morning=morning,
        streak=streak,
        booster=booster_type,
    )
