"""
Time-Related Utilities
----------------------

All airdrop date math happens in one configured zone. These helpers keep the
conversions in one place so nothing mixes host-local time with UTC.
"""

import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def now_in(tz: tzinfo) -> datetime:
    """Current wall clock as an aware datetime in `tz`."""
    return datetime.now(tz)


def as_zone(dt: datetime, tz: tzinfo) -> datetime:
    """Interpret naive datetimes as `tz` wall clock; convert aware ones."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def parse_day(value) -> Optional[date]:
    """Parse a strict `YYYY-MM-DD` string, returning None for anything else."""
    if not isinstance(value, str) or not _DATE_RE.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def parse_clock(value) -> Tuple[int, int]:
    """
    Split an `HH:MM` string into (hours, minutes).

    Missing or non-numeric components count as 0, so "10" is (10, 0) and
    "ab:cd" is (0, 0). Out-of-range values are kept; callers add them as a
    timedelta which rolls over into the next day.
    """
    if not isinstance(value, str):
        return 0, 0
    parts = value.split(":")

    def _component(idx: int) -> int:
        if idx >= len(parts):
            return 0
        token = parts[idx].strip()
        return int(token) if token.isascii() and token.isdigit() else 0

    return _component(0), _component(1)


def combine(day: date, clock, tz: tzinfo) -> datetime:
    """Aware datetime for `day` at the `HH:MM` string `clock` (00:00 when absent)."""
    hours, minutes = parse_clock(clock)
    midnight = datetime.combine(day, time(0, 0), tzinfo=tz)
    return midnight + timedelta(hours=hours, minutes=minutes)


def iso_utc(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 in UTC with millisecond precision and a `Z` suffix."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
