"""Booster types and the in-app booster shop."""

from __future__ import annotations

from datetime import timedelta

BOOSTER_MULTIPLIERS: dict[str, int] = {"2x": 2, "3x": 3}

# Higher multiplier, shorter window
BOOSTER_DURATIONS: dict[str, timedelta] = {
    "2x": timedelta(hours=2),
    "3x": timedelta(hours=1),
}

BOOSTER_GEM_COSTS: dict[str, int] = {"2x": 50, "3x": 100}

BOOSTER_SHOP: list[dict] = [
    {
        "id": "booster_2x",
        "type": "2x",
        "name": "Double XP",
        "gem_cost": BOOSTER_GEM_COSTS["2x"],
        "duration_hours": 2,
    },
    {
        "id": "booster_3x",
        "type": "3x",
        "name": "Triple XP",
        "gem_cost": BOOSTER_GEM_COSTS["3x"],
        "duration_hours": 1,
    },
]
