"""Level arithmetic and the XP bonus pipeline."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from sloop.progression.bonuses import apply_bonuses, is_morning_window
from sloop.progression.levels import compute_level, gems_for, level_info
from sloop.storage.base import BoosterState, UserState


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 10, 21, hour, minute, tzinfo=timezone.utc)


def _booster(kind: str, now: datetime, hours: int = 1) -> BoosterState:
    return BoosterState(action_id=f"b-{kind}", user_id="u", booster_type=kind, expires_at=now + timedelta(hours=hours))


class TestLevels:
    """Flat 500-XP levels and gem rate."""

    @pytest.mark.parametrize(
        ("xp", "level"),
        [(0, 1), (499, 1), (500, 2), (999, 2), (1000, 3), (12_345, 25)],
    )
    def test_compute_level(self, xp, level):
        assert compute_level(xp) == level

    def test_gems_one_per_hundred(self):
        assert gems_for(99) == 0
        assert gems_for(100) == 1
        assert gems_for(600) == 6
        assert gems_for(0) == 0

    def test_level_info_progress(self):
        info = level_info(1250)
        assert info["level"] == 3
        assert info["xp_into_level"] == 250
        assert info["xp_for_level"] == 500
        assert info["next_level"] == 4


class TestMorningWindow:
    """[06:00, 09:00) UTC, half-open."""

    def test_boundaries(self):
        assert not is_morning_window(_at(5, 59))
        assert is_morning_window(_at(6, 0))
        assert is_morning_window(_at(8, 59))
        assert not is_morning_window(_at(9, 0))


class TestApplyBonuses:
    """Bonuses compound multiplicatively in a fixed order."""

    def test_no_bonuses(self):
        user = UserState(user_id="u", name="U")
        result = apply_bonuses(100, user, None, _at(12))
        assert result.final_amount == 100
        assert result.as_dict() == {"morning": False, "streak": False, "booster": None}

    def test_all_bonuses_compound_to_600(self):
        """100 at 07:00 with unused morning permit, streak bonus, 2x booster = 600."""
        now = _at(7)
        user = UserState(user_id="u", name="U", has_streak_bonus=True)
        result = apply_bonuses(100, user, _booster("2x", now), now)
        assert result.final_amount == 600
        assert result.morning and result.streak
        assert result.booster == "2x"

    def test_floor_only_at_morning_step(self):
        """101 * 1.5 floors to 151 before doubling, giving 604 not 606."""
        now = _at(7)
        user = UserState(user_id="u", name="U", has_streak_bonus=True)
        result = apply_bonuses(101, user, _booster("2x", now), now)
        assert result.final_amount == 604

    def test_morning_permit_used_today(self):
        now = _at(7)
        user = UserState(user_id="u", name="U", morning_bonus_date=now.date())
        assert apply_bonuses(100, user, None, now).final_amount == 100

    def test_morning_permit_from_yesterday_is_fresh(self):
        now = _at(7)
        user = UserState(user_id="u", name="U", morning_bonus_date=date(2026, 10, 20))
        assert apply_bonuses(100, user, None, now).final_amount == 150

    def test_triple_booster(self):
        now = _at(12)
        user = UserState(user_id="u", name="U")
        assert apply_bonuses(100, user, _booster("3x", now), now).final_amount == 300

    def test_expired_booster_ignored(self):
        now = _at(12)
        user = UserState(user_id="u", name="U")
        expired = _booster("3x", now, hours=-1)
        assert apply_bonuses(100, user, expired, now).final_amount == 100
