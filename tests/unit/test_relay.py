"""
Unit tests for the live relay (per-scan channels with replay).
"""
import asyncio

import pytest

from nmapdeck.engine.relay import SCAN_COMPLETE, SCAN_PROGRESS, SCAN_TRUNCATED, ScanRelay
from nmapdeck.errors import ErrorCode, NmapDeckError


async def _collect(relay, scan_id, since=0):
    return [event async for event in relay.subscribe(scan_id, since=since)]


@pytest.mark.asyncio
async def test_late_subscriber_gets_full_replay():
    relay = ScanRelay()
    relay.open("s1")
    relay.publish_progress("s1", "stdout", "Starting Nmap\n")
    relay.publish_progress("s1", "stderr", "warning\n")
    relay.publish_complete("s1", {"success": True, "code": 0})

    events = await _collect(relay, "s1")

    assert [e.event for e in events] == [SCAN_PROGRESS, SCAN_PROGRESS, SCAN_COMPLETE]
    assert [e.sequence for e in events] == [1, 2, 3]
    assert events[0].payload == {"type": "stdout", "data": "Starting Nmap\n"}
    assert events[1].payload["type"] == "stderr"


@pytest.mark.asyncio
async def test_since_skips_already_seen_events():
    relay = ScanRelay()
    relay.open("s1")
    for i in range(4):
        relay.publish_progress("s1", "stdout", f"line {i}\n")
    relay.publish_complete("s1", {"code": 0})

    events = await _collect(relay, "s1", since=3)

    assert [e.sequence for e in events] == [4, 5]
    assert events[-1].is_terminal


@pytest.mark.asyncio
async def test_live_subscriber_ends_after_completion():
    relay = ScanRelay()
    relay.open("s1")
    relay.publish_progress("s1", "stdout", "early\n")

    consumer = asyncio.create_task(_collect(relay, "s1"))
    await asyncio.sleep(0)
    relay.publish_progress("s1", "stdout", "late\n")
    relay.publish_complete("s1", {"code": 1})

    events = await asyncio.wait_for(consumer, timeout=1)

    assert [e.payload.get("data") for e in events[:2]] == ["early\n", "late\n"]
    assert events[-1].event == SCAN_COMPLETE
    assert relay.stats()["subscribers"] == 0


@pytest.mark.asyncio
async def test_unknown_scan_cannot_be_subscribed():
    relay = ScanRelay()
    with pytest.raises(NmapDeckError) as exc:
        await _collect(relay, "missing")
    assert exc.value.code == ErrorCode.SCAN_NOT_FOUND


def test_nothing_is_published_after_completion():
    relay = ScanRelay()
    relay.open("s1")
    assert relay.publish_complete("s1", {"code": 0}) is not None
    assert relay.publish_progress("s1", "stdout", "too late") is None
    assert relay.publish_complete("s1", {"code": 0}) is None
    events, truncated = relay.history("s1")
    assert len(events) == 1 and not truncated
    assert relay.stats() == {"channels": 1, "open_channels": 0, "subscribers": 0}


def test_publish_to_unknown_scan_is_dropped():
    relay = ScanRelay()
    assert relay.publish_progress("ghost", "stdout", "x") is None
    assert relay.history("ghost") == ([], False)


def test_finished_channels_are_evicted_oldest_first():
    relay = ScanRelay(retain_finished=2)
    for scan_id in ("a", "b", "c"):
        relay.open(scan_id)
        relay.publish_complete(scan_id, {"code": 0})

    assert not relay.has("a")
    assert relay.has("b") and relay.has("c")


def test_history_is_bounded_and_reports_truncation():
    relay = ScanRelay(history_size=3)
    relay.open("s1")
    for i in range(10):
        relay.publish_progress("s1", "stdout", str(i))

    events, truncated = relay.history("s1")
    assert [e.payload["data"] for e in events] == ["7", "8", "9"]
    assert truncated

    events, truncated = relay.history("s1", since=7)
    assert [e.sequence for e in events] == [8, 9, 10]
    assert not truncated


@pytest.mark.asyncio
async def test_replay_gap_is_announced_before_backlog():
    relay = ScanRelay(history_size=3)
    relay.open("s1")
    for i in range(10):
        relay.publish_progress("s1", "stdout", str(i))
    relay.publish_complete("s1", {"code": 0})

    events = await _collect(relay, "s1", since=2)

    assert events[0].event == SCAN_TRUNCATED
    assert events[0].payload == {"dropped": 6, "since": 2, "firstAvailable": 9}
    assert [e.sequence for e in events] == [8, 9, 10, 11]
    assert events[-1].is_terminal
    # The gap marker is per-subscriber, never stored
    assert all(e.event != SCAN_TRUNCATED for e in relay.history("s1")[0])


@pytest.mark.asyncio
async def test_no_gap_marker_when_buffer_covers_since():
    relay = ScanRelay(history_size=3)
    relay.open("s1")
    for i in range(3):
        relay.publish_progress("s1", "stdout", str(i))
    relay.publish_complete("s1", {"code": 0})

    events = await _collect(relay, "s1", since=1)

    assert [e.event for e in events] == [SCAN_PROGRESS, SCAN_PROGRESS, SCAN_COMPLETE]


def test_event_serialization():
    relay = ScanRelay()
    relay.open("s1")
    event = relay.publish_progress("s1", "stdout", "hi")
    data = event.to_dict()
    assert data["scanId"] == "s1"
    assert data["event"] == SCAN_PROGRESS
    assert data["data"] == {"type": "stdout", "data": "hi"}
    assert '"sequence": 1' in event.to_json()
