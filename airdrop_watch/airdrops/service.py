"""High-level airdrop service.

Responsibilities:
    * Pull the raw feed through the collector.
    * Resolve phase shifts and statuses against the wall clock, then order.
    * Track a fingerprint of the visible state to flag changes between fetches.
    * Hold the latest snapshot and serve it while it is fresh.
    * Run the unattended refresh loop (``RefreshScheduler``).

The snapshot is swapped as a whole under a lock; readers only ever see a
complete one. Background and on-demand refreshes are not serialized against
each other, the last one to finish wins.
"""
from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Protocol

from loguru import logger

from airdrop_watch.core.config import Settings
from airdrop_watch.core.custom_types import FetchSnapshot
from airdrop_watch.core.timeutils import as_zone, iso_utc, now_in, zone
from .collector import AirdropCollector
from .fingerprint import FingerprintTracker, fingerprint
from .ordering import sort_airdrops
from .status import resolve_airdrops


class FeedSource(Protocol):
    async def fetch(self) -> Dict[str, Any]:
        ...  # pragma: no cover - interface


class AirdropService:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        collector: Optional[FeedSource] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or Settings()
        self.tz = zone(self.settings.status.timezone)
        self.collector = collector or AirdropCollector(self.settings.upstream)
        self.tracker = FingerprintTracker(self.settings.fingerprint.policy)
        self.freshness = timedelta(minutes=self.settings.cache.freshness_min)
        self._clock = clock
        self._snapshot: Optional[FetchSnapshot] = None
        self._lock = asyncio.Lock()
        self._health: Dict[str, Any] = {
            "refresh_count": 0,
            "error_count": 0,
            "last_success_ms": 0,
            "last_error": None,
            "last_error_ms": 0,
        }

    # ------------------------------------------------------------------
    def now(self) -> datetime:
        if self._clock is None:
            return now_in(self.tz)
        return as_zone(self._clock(), self.tz)

    @property
    def snapshot(self) -> Optional[FetchSnapshot]:
        return self._snapshot

    # ------------------------------------------------------------------
    async def refresh(self) -> FetchSnapshot:
        """Fetch, normalize, order, fingerprint and publish a new snapshot.

        Upstream errors propagate to the caller after being counted.
        """
        try:
            raw = await self.collector.fetch()
        except Exception as e:
            self._health["error_count"] += 1
            self._health["last_error"] = f"{type(e).__name__}: {e}"
            self._health["last_error_ms"] = int(time.time() * 1000)
            raise

        now = self.now()
        st = self.settings.status
        airdrops = resolve_airdrops(
            raw.get("airdrops") or [],
            now,
            self.tz,
            shift_phase=st.shift_phase,
            shift_hours=st.shift_hours,
            undated_status=st.undated_status,
        )
        airdrops = sort_airdrops(airdrops)
        data = {**raw, "airdrops": airdrops}

        async with self._lock:
            has_changes = self.tracker.check_and_update(airdrops)
            snap = FetchSnapshot(
                data=data,
                fetched_at=now,
                fingerprint=fingerprint(airdrops),
                has_changes=has_changes,
            )
            self._snapshot = snap

        self._health["refresh_count"] += 1
        self._health["last_success_ms"] = int(time.time() * 1000)
        logger.info(f"Airdrop data refreshed at {now.isoformat(timespec='seconds')} ({len(airdrops)} airdrops)")
        if has_changes:
            logger.info("Airdrop data changed since the previous fetch")
        return snap

    # ------------------------------------------------------------------
    def is_fresh(self, now: Optional[datetime] = None) -> bool:
        snap = self._snapshot
        if snap is None:
            return False
        now = now or self.now()
        return now - snap.fetched_at < self.freshness

    async def get_or_refresh(self) -> Dict[str, Any]:
        """Serve the cached payload while fresh, otherwise refresh.

        Only a live refresh adds ``hasChanges`` and ``lastUpdateTime``.
        """
        snap = self._snapshot
        if snap is not None and self.is_fresh():
            logger.debug("Serving cached airdrop data")
            return {**snap.data}
        snap = await self.refresh()
        return {
            **snap.data,
            "hasChanges": snap.has_changes,
            "lastUpdateTime": iso_utc(snap.fetched_at),
        }

    def last_update(self) -> Dict[str, Any]:
        snap = self._snapshot
        return {
            "lastFetchTime": iso_utc(snap.fetched_at) if snap else None,
            "hasCachedData": snap is not None,
        }

    def health(self) -> Dict[str, Any]:
        snap = self._snapshot
        out = dict(self._health)
        out["has_cached_data"] = snap is not None
        out["snapshot_age_sec"] = (self.now() - snap.fetched_at).total_seconds() if snap else None
        out["airdrop_count"] = len(snap.airdrops) if snap else 0
        out["fingerprint"] = snap.fingerprint if snap else None
        return out

    async def close(self):
        close = getattr(self.collector, "close", None)
        if close is not None:
            await close()


class RefreshScheduler:
    """Periodic refresh loop.

    Usage:
        scheduler = RefreshScheduler(service, interval_sec=600)
        await scheduler.start()
        ...
        await scheduler.stop()

    A failed tick is logged and the loop keeps its cadence; the previous
    snapshot stays in place.
    """

    def __init__(self, service: AirdropService, interval_sec: Optional[float] = None):
        self.service = service
        if interval_sec is None:
            interval_sec = service.settings.cache.refresh_interval_min * 60
        self.interval_sec = float(interval_sec)
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self):
        if self.running:
            return
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"RefreshScheduler started (every {self.interval_sec / 60:.1f} min)")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("RefreshScheduler stopped.")

    async def run_once(self) -> bool:
        """One scheduled tick. Returns False when the refresh failed."""
        try:
            await self.service.refresh()
        except Exception as e:
            logger.error(f"Scheduled airdrop refresh failed: {e}")
            return False
        return True

    async def _run_loop(self):
        while True:
            start = time.monotonic()
            await self.run_once()
            elapsed = time.monotonic() - start
            await asyncio.sleep(max(0.0, self.interval_sec - elapsed))


__all__ = ["FeedSource", "AirdropService", "RefreshScheduler"]
