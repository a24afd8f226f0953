"""Week boundary helpers for the weekly league cycle (ISO weeks, UTC)."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone


def get_week_iso(dt: datetime | date) -> str:
    """ISO week string e.g. '2026-W09'. Uses %G-W%V (ISO year + ISO week)."""
    return dt.strftime("%G-W%V")


def get_monday(dt: datetime | date) -> date:
    """Monday of the ISO week containing dt."""
    d = dt.date() if isinstance(dt, datetime) else dt
    return d - timedelta(days=d.weekday())


def get_previous_week(now: datetime | None = None) -> tuple[date, date]:
    """(Monday, Sunday) of the ISO week before the one containing ``now``.

    The league job fires at Monday 00:00 UTC, so this is the week that just
    ended.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    monday = get_monday(now) - timedelta(weeks=1)
    return monday, monday + timedelta(days=6)
