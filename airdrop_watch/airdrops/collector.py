"""Upstream airdrop feed collector.

One GET against the configured URL with a browser-like header set. The body
is expected to be a JSON object carrying an ``airdrops`` list; every other
top-level key is handed back untouched so the API can pass it through.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
from loguru import logger

from airdrop_watch.core.config import UpstreamSettings


class UpstreamError(Exception):
    """Base class for failures talking to the airdrop feed."""


class UpstreamUnavailable(UpstreamError):
    """Transport error, timeout or non-2xx response."""


class UpstreamMalformed(UpstreamError):
    """Response body is not a JSON object."""


def coerce_payload(body: Any) -> Dict[str, Any]:
    """Validate the decoded body and normalize its ``airdrops`` entry.

    A missing or non-list ``airdrops`` becomes an empty list and entries that
    are not JSON objects are dropped; both are logged rather than raised.
    """
    if not isinstance(body, dict):
        raise UpstreamMalformed(f"Expected a JSON object from upstream, got {type(body).__name__}")
    payload = dict(body)
    airdrops = payload.get("airdrops")
    if not isinstance(airdrops, list):
        logger.warning(f"Upstream payload has no airdrops list (got {type(airdrops).__name__}); treating as empty")
        payload["airdrops"] = []
        return payload
    records = [a for a in airdrops if isinstance(a, dict)]
    if len(records) != len(airdrops):
        logger.warning(f"Dropped {len(airdrops) - len(records)} malformed airdrop entries from upstream payload")
    payload["airdrops"] = records
    return payload


class AirdropCollector:
    """Fetches the raw feed. Owns an ``httpx.AsyncClient``; call ``close``."""

    def __init__(self, settings: Optional[UpstreamSettings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or UpstreamSettings()
        self._client = httpx.AsyncClient(
            timeout=self.settings.timeout_sec,
            headers=self.settings.headers,
            transport=transport,
        )

    async def close(self):
        await self._client.aclose()

    async def fetch(self) -> Dict[str, Any]:
        url = self.settings.url
        logger.debug(f"Fetching airdrop feed from {url}")
        try:
            resp = await self._client.get(url)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailable(f"Unable to reach upstream: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Unable to reach upstream: {e!r}") from e
        try:
            body = resp.json()
        except ValueError as e:
            raise UpstreamMalformed(f"Upstream returned invalid JSON: {e}") from e
        payload = coerce_payload(body)
        logger.info(f"Fetched {len(payload['airdrops'])} airdrops from upstream")
        return payload


__all__ = ["UpstreamError", "UpstreamUnavailable", "UpstreamMalformed", "coerce_payload", "AirdropCollector"]
