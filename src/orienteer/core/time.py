"""
Time parsing, clocks and elapsed-time display.

Progress timestamps are always timezone-aware UTC datetimes so that values coming
from the server (ISO strings, often with a trailing `Z`) and values created locally
compare and subtract safely.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_tz(dt: datetime, tz: str = "UTC") -> datetime:
    """Ensure `dt` has tzinfo; attach `tz` if naive."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=ZoneInfo(tz))
    return dt


def parse_datetime(value: str, tz: str = "UTC") -> datetime:
    """Parse ISO-8601 datetime string and ensure tzinfo is present.

    Notes:
    - Accepts a trailing `Z` (UTC) and converts it to `+00:00` for `fromisoformat`.
    - If the parsed value is naive, the provided `tz` is attached.
    """
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return ensure_tz(datetime.fromisoformat(value), tz)


def format_elapsed(delta: timedelta) -> str:
    """Format an elapsed duration the way the hunt screens show it.

    `1h 2m` once past an hour, `3m 4s` past a minute, otherwise `5s`.
    Negative durations are shown as zero.
    """
    seconds = max(0, int(delta.total_seconds()))
    minutes = seconds // 60
    hours = minutes // 60
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"
