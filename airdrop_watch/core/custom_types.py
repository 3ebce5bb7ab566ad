"""
Shared types for the airdrop pipeline.

Upstream records stay plain dictionaries end to end so unknown keys pass
through untouched; only the fields the pipeline reasons about are named here.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class AirdropStatus(str, Enum):
    ANNOUNCED = "announced"
    COMPLETED = "completed"


# Keys that make up the visible state of an airdrop (used for change detection).
VISIBLE_FIELDS = ("token", "status", "date", "time")

RawAirdrop = Dict[str, Any]
Airdrop = Dict[str, Any]


@dataclass(frozen=True)
class FetchSnapshot:
    """One completed refresh: the payload served to clients plus bookkeeping.

    `data` is the upstream body with `airdrops` replaced by the normalized,
    ordered list. The snapshot is swapped as a whole and never mutated.
    """
    data: Dict[str, Any]
    fetched_at: datetime
    fingerprint: Optional[str] = None
    has_changes: bool = False

    @property
    def airdrops(self) -> List[Airdrop]:
        return self.data.get("airdrops", [])
