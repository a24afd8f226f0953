"""Level and gem arithmetic.

Levels are flat 500-XP bands over the user's accumulated ``xp``. These
values must match the mobile client's level bar.
"""

from __future__ import annotations

XP_PER_LEVEL = 500
XP_PER_GEM = 100
# Largest base amount one award may carry; bonuses can raise it ninefold
MAX_XP_AWARD = 10_000


def compute_level(total_xp: int) -> int:
    """Level for ``total_xp`` (level 1 starts at 0 XP)."""
    return max(total_xp, 0) // XP_PER_LEVEL + 1


def gems_for(final_amount: int) -> int:
    """Gems earned for one award: one per full 100 XP of that award."""
    return max(final_amount, 0) // XP_PER_GEM


def level_info(total_xp: int) -> dict:
    """Progress within the current level, for the profile screen."""
    level = compute_level(total_xp)
    xp_into_level = max(total_xp, 0) - (level - 1) * XP_PER_LEVEL
    return {
        "level": level,
        "xp_into_level": xp_into_level,
        "xp_for_level": XP_PER_LEVEL,
        "next_level": level + 1,
    }
