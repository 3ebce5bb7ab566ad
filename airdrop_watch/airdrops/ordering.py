"""Presentation order for normalized airdrops.

Newest date first. Within a day, entries without a time lead (they are
usually all-day announcements), then timed entries latest first. Python's
sort is stable, so entries that tie on every key keep feed order.
"""
from __future__ import annotations

from functools import cmp_to_key
from typing import Iterable, List

from airdrop_watch.core.custom_types import Airdrop


def _text(value) -> str:
    return value if isinstance(value, str) else ""


def compare_airdrops(a: Airdrop, b: Airdrop) -> int:
    date_a, date_b = _text(a.get("date")), _text(b.get("date"))
    if date_a != date_b:
        return -1 if date_a > date_b else 1
    time_a, time_b = _text(a.get("time")), _text(b.get("time"))
    if not time_a and time_b:
        return -1
    if time_a and not time_b:
        return 1
    if time_a != time_b:
        return -1 if time_a > time_b else 1
    return 0


def sort_airdrops(airdrops: Iterable[Airdrop]) -> List[Airdrop]:
    return sorted(airdrops, key=cmp_to_key(compare_airdrops))


__all__ = ["compare_airdrops", "sort_airdrops"]
