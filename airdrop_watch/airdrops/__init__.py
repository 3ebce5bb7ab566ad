"""Airdrop feed pipeline.

Modules:
    collector: Upstream HTTP fetch of the raw feed.
    status: Phase-2 time shift and announced/completed resolution.
    ordering: Presentation order (newest date first, untimed entries lead).
    fingerprint: Change detection over the visible fields.
    service: Snapshot cache, on-demand refresh and the periodic scheduler.
"""

from .service import AirdropService, RefreshScheduler  # convenience import

__all__ = ["AirdropService", "RefreshScheduler"]
