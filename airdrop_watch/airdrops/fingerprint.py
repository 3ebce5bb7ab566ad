"""Change detection over the visible state of the airdrop list.

Only ``token``, ``status``, ``date`` and ``time`` take part, in list order,
so cosmetic upstream fields never register as a change while a re-ordering
does.
"""
from __future__ import annotations

import hashlib
import json
from threading import RLock
from typing import Iterable, Optional

from loguru import logger

from airdrop_watch.core.custom_types import VISIBLE_FIELDS, Airdrop

POLICY_REFRESH = "refresh"
POLICY_STICKY = "sticky"


def fingerprint(airdrops: Iterable[Airdrop]) -> str:
    visible = [{k: a.get(k) for k in VISIBLE_FIELDS} for a in airdrops]
    blob = json.dumps(visible, separators=(",", ":"), ensure_ascii=False, default=str)
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


class FingerprintTracker:
    def __init__(self, policy: str = POLICY_REFRESH):
        if policy not in (POLICY_REFRESH, POLICY_STICKY):
            raise ValueError(f"Unknown fingerprint policy: {policy}")
        self.policy = policy
        self._lock = RLock()
        self._current: Optional[str] = None

    @property
    def current(self) -> Optional[str]:
        return self._current

    # ------------------------------------------------------------------
    def check_and_update(self, airdrops: Iterable[Airdrop]) -> bool:
        """Return True when the visible state differs from the stored one.

        The first observation is never a change. Under the sticky policy a
        detected change leaves the stored fingerprint alone.
        """
        new = fingerprint(airdrops)
        with self._lock:
            prev = self._current
            if prev is None:
                self._current = new
                return False
            if new != prev:
                logger.debug(f"Airdrop list changed ({prev[:12]} -> {new[:12]})")
                if self.policy == POLICY_REFRESH:
                    self._current = new
                return True
            self._current = new
            return False

    def reset(self):
        with self._lock:
            self._current = None


__all__ = ["POLICY_REFRESH", "POLICY_STICKY", "fingerprint", "FingerprintTracker"]
