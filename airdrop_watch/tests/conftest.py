"""
Pytest fixtures for the Airdrop Watch test suite.

The upstream feed and the wall clock are both replaced with in-memory fakes
so every test is deterministic and offline.
"""
import copy
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from airdrop_watch.core.config import Settings

TZ = ZoneInfo("Asia/Shanghai")

SAMPLE_PAYLOAD = {
    "airdrops": [
        {"token": "OLD", "phase": 1, "date": "2023-12-30", "time": "20:00", "status": "announced"},
        {"token": "SHIFT", "phase": 2, "date": "2024-01-01", "time": "10:00", "status": "announced"},
        {"token": "LATER", "phase": 1, "date": "2024-01-02", "time": "18:30", "status": "completed"},
        {"token": "ALLDAY", "phase": 1, "date": "2024-01-02", "status": "announced"},
        {"token": "NEXT", "phase": 1, "date": "2024-01-03", "time": "09:00", "status": "announced"},
    ],
    "updatedAt": "2024-01-02T03:00:00Z",
    "source": "feed",
}


class FakeFeed:
    """Stands in for AirdropCollector and counts upstream calls."""

    def __init__(self, payload=None, error=None):
        self.payload = payload if payload is not None else {"airdrops": []}
        self.error = error
        self.calls = 0

    async def fetch(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.payload)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def tz():
    return TZ


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def clock() -> FakeClock:
    # 2024-01-02 12:00 in Asia/Shanghai
    return FakeClock(datetime(2024, 1, 2, 12, 0, tzinfo=TZ))


@pytest.fixture
def sample_payload():
    return copy.deepcopy(SAMPLE_PAYLOAD)


@pytest.fixture
def feed(sample_payload) -> FakeFeed:
    return FakeFeed(sample_payload)


@pytest.fixture
def make_feed():
    return FakeFeed
