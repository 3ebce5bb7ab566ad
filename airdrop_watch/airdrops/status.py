"""Time shift and status resolution for airdrop records.

Every record goes through two steps:

    1. Phase shift: phase-2 events are listed by the feed 18 hours ahead of
       when they actually settle, so their date/time are moved forward before
       anything else looks at them.
    2. Status: the shifted date/time is compared to the wall clock in the
       configured zone. The upstream ``status`` field is kept only as
       ``original_status``; it never decides what is displayed.

Nothing here raises on bad input. Dates that are not strict ``YYYY-MM-DD``
strings count as absent, and unparseable time components count as zero.
A shift or time that overflows the calendar leaves the upstream values alone.
"""
from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from typing import Iterable, List, Mapping, Optional

from loguru import logger

from airdrop_watch.core.custom_types import Airdrop, AirdropStatus, RawAirdrop
from airdrop_watch.core.timeutils import as_zone, combine, parse_day, start_of_day

SHIFT_PHASE = 2
SHIFT_HOURS = 18.0


def _is_shift_phase(phase, shift_phase: int) -> bool:
    # bool is an int subclass; True must not match phase 1
    return not isinstance(phase, bool) and isinstance(phase, (int, float)) and phase == shift_phase


def shift_phase_time(
    raw: Mapping,
    tz: tzinfo,
    *,
    shift_phase: int = SHIFT_PHASE,
    shift_hours: float = SHIFT_HOURS,
) -> tuple:
    """Return the effective ``(date, time)`` for one raw record."""
    date_val = raw.get("date")
    time_val = raw.get("time")
    if not _is_shift_phase(raw.get("phase"), shift_phase):
        return date_val, time_val
    day = parse_day(date_val)
    if day is None:
        return date_val, time_val
    try:
        base = combine(day, time_val or "00:00", tz) + timedelta(hours=shift_hours)
    except OverflowError:
        logger.debug(f"Phase shift of {date_val!r} {time_val!r} is out of range; keeping upstream date/time")
        return date_val, time_val
    return base.strftime("%Y-%m-%d"), base.strftime("%H:%M")


def compute_status(date_val, time_val, now: datetime) -> Optional[AirdropStatus]:
    """Status for an effective date/time, or None when the date is unusable.

    ``now`` must already be in the zone the dates are expressed in. A time
    that pushes the instant past the end of the calendar counts as unusable.
    """
    day = parse_day(date_val)
    if day is None:
        return None
    today = start_of_day(now).date()
    if day < today:
        return AirdropStatus.COMPLETED
    if day > today:
        return AirdropStatus.ANNOUNCED
    if not time_val:
        return AirdropStatus.ANNOUNCED
    try:
        instant = combine(day, time_val, now.tzinfo)
    except OverflowError:
        return None
    return AirdropStatus.COMPLETED if instant <= now else AirdropStatus.ANNOUNCED


def resolve_airdrop(
    raw: RawAirdrop,
    now: datetime,
    tz: tzinfo,
    *,
    shift_phase: int = SHIFT_PHASE,
    shift_hours: float = SHIFT_HOURS,
    undated_status: Optional[str] = None,
) -> Airdrop:
    """Normalize a single raw record. The input mapping is left untouched."""
    now = as_zone(now, tz)
    out: Airdrop = dict(raw)
    eff_date, eff_time = shift_phase_time(raw, tz, shift_phase=shift_phase, shift_hours=shift_hours)
    if (eff_date, eff_time) != (raw.get("date"), raw.get("time")):
        out["date"], out["time"] = eff_date, eff_time

    status = compute_status(eff_date, eff_time, now)
    out["original_status"] = raw.get("status")
    if status is not None:
        out["status"] = status.value
    elif undated_status is not None:
        out["status"] = undated_status
    elif raw.get("date") is not None:
        logger.debug(f"Airdrop {raw.get('token')!r} has unusable date/time {raw.get('date')!r} {raw.get('time')!r}; keeping upstream status")
    return out


def resolve_airdrops(
    raws: Iterable[RawAirdrop],
    now: datetime,
    tz: tzinfo,
    **kwargs,
) -> List[Airdrop]:
    """Normalize a whole feed against one shared ``now``."""
    now = as_zone(now, tz)
    return [resolve_airdrop(r, now, tz, **kwargs) for r in raws]


__all__ = ["SHIFT_PHASE", "SHIFT_HOURS", "shift_phase_time", "compute_status", "resolve_airdrop", "resolve_airdrops"]
