"""
Tests for AirdropService caching/refresh and the RefreshScheduler loop.
"""
import asyncio
import json

import pytest

from airdrop_watch.airdrops.collector import UpstreamUnavailable
from airdrop_watch.airdrops.service import AirdropService, RefreshScheduler
from airdrop_watch.core.config import Settings


def _service(feed, clock, settings=None):
    return AirdropService(settings or Settings(), collector=feed, clock=clock)


@pytest.mark.asyncio
async def test_refresh_normalizes_orders_and_passes_fields_through(feed, clock):
    svc = _service(feed, clock)
    snap = await svc.refresh()

    assert snap.data["source"] == "feed"
    assert snap.data["updatedAt"] == "2024-01-02T03:00:00Z"
    tokens = [a["token"] for a in snap.airdrops]
    # SHIFT moves to 2024-01-02 04:00; ALLDAY has no time so it leads the day
    assert tokens == ["NEXT", "ALLDAY", "LATER", "SHIFT", "OLD"]
    by_token = {a["token"]: a for a in snap.airdrops}
    assert by_token["SHIFT"]["status"] == "completed"
    assert (by_token["SHIFT"]["date"], by_token["SHIFT"]["time"]) == ("2024-01-02", "04:00")
    assert by_token["LATER"]["status"] == "announced"
    assert by_token["LATER"]["original_status"] == "completed"
    assert by_token["OLD"]["status"] == "completed"
    assert snap.has_changes is False
    assert snap.fetched_at == clock.now
    assert svc.snapshot is snap


@pytest.mark.asyncio
async def test_cache_hit_within_freshness_window(feed, clock):
    svc = _service(feed, clock)
    first = await svc.get_or_refresh()
    clock.advance(minutes=4, seconds=59)
    second = await svc.get_or_refresh()
    third = await svc.get_or_refresh()

    assert feed.calls == 1
    assert first["hasChanges"] is False
    assert first["lastUpdateTime"] == "2024-01-02T04:00:00.000Z"
    assert "hasChanges" not in second and "lastUpdateTime" not in second
    assert json.dumps(second, sort_keys=True) == json.dumps(third, sort_keys=True)
    stripped = {k: v for k, v in first.items() if k not in ("hasChanges", "lastUpdateTime")}
    assert stripped == second


@pytest.mark.asyncio
async def test_cache_hit_result_does_not_alias_snapshot(feed, clock):
    svc = _service(feed, clock)
    await svc.get_or_refresh()
    cached = await svc.get_or_refresh()
    cached["source"] = "edited"
    cached["extra"] = 1
    assert svc.snapshot.data["source"] == "feed"
    assert "extra" not in svc.snapshot.data


@pytest.mark.asyncio
async def test_out_of_range_record_does_not_sink_refresh(make_feed, clock):
    feed = make_feed({"airdrops": [
        {"token": "GOOD", "phase": 1, "date": "2024-01-01", "time": "10:00", "status": "announced"},
        {"token": "END", "phase": 2, "date": "9999-12-31", "time": "10:00", "status": "announced"},
        {"token": "BIG", "phase": 1, "date": "2024-01-02", "time": "99999999999:00", "status": "live"},
    ]})
    svc = _service(feed, clock)
    out = await svc.get_or_refresh()
    by_token = {a["token"]: a for a in out["airdrops"]}
    assert by_token["GOOD"]["status"] == "completed"
    assert by_token["END"]["date"] == "9999-12-31"
    assert by_token["BIG"]["status"] == "live"
    assert svc.snapshot is not None
    assert svc.health()["error_count"] == 0


@pytest.mark.asyncio
async def test_stale_snapshot_triggers_refetch(feed, clock):
    svc = _service(feed, clock)
    await svc.get_or_refresh()
    clock.advance(minutes=5)
    out = await svc.get_or_refresh()
    assert feed.calls == 2
    assert "hasChanges" in out


@pytest.mark.asyncio
async def test_change_is_flagged_on_live_refresh(feed, clock):
    svc = _service(feed, clock)
    await svc.get_or_refresh()
    feed.payload["airdrops"][4]["time"] = "11:00"   # NEXT moves earlier, still tomorrow
    feed.payload["airdrops"].append({"token": "NEW", "date": "2024-01-04", "status": "announced"})
    clock.advance(minutes=6)
    out = await svc.get_or_refresh()
    assert out["hasChanges"] is True
    assert out["airdrops"][0]["token"] == "NEW"


@pytest.mark.asyncio
async def test_status_rollover_counts_as_change(feed, clock):
    svc = _service(feed, clock)
    await svc.refresh()
    clock.advance(hours=7)  # 19:00, LATER (18:30) has now happened
    snap = await svc.refresh()
    assert snap.has_changes is True
    assert {a["token"]: a["status"] for a in snap.airdrops}["LATER"] == "completed"


@pytest.mark.asyncio
async def test_refresh_error_propagates_and_keeps_snapshot(feed, clock):
    svc = _service(feed, clock)
    good = await svc.refresh()
    feed.error = UpstreamUnavailable("Unable to reach upstream: timeout")
    clock.advance(minutes=10)
    with pytest.raises(UpstreamUnavailable):
        await svc.get_or_refresh()
    assert svc.snapshot is good
    health = svc.health()
    assert health["error_count"] == 1
    assert health["refresh_count"] == 1
    assert "UpstreamUnavailable" in health["last_error"]
    assert health["snapshot_age_sec"] == 600


@pytest.mark.asyncio
async def test_last_update_reports_fetch_time(feed, clock):
    svc = _service(feed, clock)
    assert svc.last_update() == {"lastFetchTime": None, "hasCachedData": False}
    await svc.refresh()
    assert svc.last_update() == {"lastFetchTime": "2024-01-02T04:00:00.000Z", "hasCachedData": True}


@pytest.mark.asyncio
async def test_undated_status_setting_applies(make_feed, clock):
    settings = Settings.model_validate({"status": {"undated_status": "announced"}})
    feed = make_feed({"airdrops": [{"token": "TBA", "status": "pending"}]})
    snap = await _service(feed, clock, settings).refresh()
    assert snap.airdrops[0]["status"] == "announced"
    assert snap.airdrops[0]["original_status"] == "pending"


@pytest.mark.asyncio
async def test_scheduler_tick_failure_is_swallowed(feed, clock):
    svc = _service(feed, clock)
    scheduler = RefreshScheduler(svc, interval_sec=3600)
    assert await scheduler.run_once() is True
    before = svc.snapshot
    feed.error = UpstreamUnavailable("down")
    assert await scheduler.run_once() is False
    assert svc.snapshot is before


@pytest.mark.asyncio
async def test_scheduler_refreshes_immediately_and_stops(feed, clock):
    svc = _service(feed, clock)
    scheduler = RefreshScheduler(svc, interval_sec=3600)
    await scheduler.start()
    for _ in range(20):
        if feed.calls:
            break
        await asyncio.sleep(0)
    assert feed.calls == 1
    assert scheduler.running
    await scheduler.stop()
    assert not scheduler.running
    assert svc.snapshot is not None


@pytest.mark.asyncio
async def test_scheduler_repeats_and_survives_errors(make_feed, clock):
    feed = make_feed(error=UpstreamUnavailable("down"))
    svc = _service(feed, clock)
    scheduler = RefreshScheduler(svc, interval_sec=0.01)
    await scheduler.start()
    await asyncio.sleep(0.1)
    await scheduler.stop()
    assert feed.calls >= 2
    assert svc.snapshot is None
    assert svc.health()["error_count"] == feed.calls


def test_scheduler_interval_defaults_to_settings(feed, clock):
    svc = _service(feed, clock, Settings.model_validate({"cache": {"refresh_interval_min": 2}}))
    assert RefreshScheduler(svc).interval_sec == 120.0
