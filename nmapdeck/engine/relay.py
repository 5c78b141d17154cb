# ============================================================================
# nmapdeck/engine/relay.py
# Live Relay - per-scan publish/subscribe
# ============================================================================
#
# PURPOSE:
# Decouples the orchestrator (producer of output chunks) from the WebSocket
# and SSE endpoints (consumers). Each scan gets its own channel.
#
# EVENTS:
# - "scan-progress": {"type": "stdout" | "stderr", "data": chunk}
# - "scan-complete": ScanOutcome dict plus display message. Always the last
#   event of a channel; publishing it closes the channel.
# - "scan-truncated": sent only to a subscriber whose `since` points into
#   output already evicted from the bounded buffer. Never buffered.
#
# GUARANTEES:
# 1. Every event gets a per-scan, monotonically increasing sequence number.
# 2. subscribe(scan_id, since=N) replays buffered events with sequence > N,
#    then streams live ones, and ends after "scan-complete". The browser
#    subscribes after POST /api/scan returns, so replay covers the gap.
# 3. Publishing never blocks: subscriber queues are unbounded and fed
#    synchronously from the event loop.
#
# ============================================================================

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Deque, Dict, List, Optional, Tuple

from nmapdeck.errors import ErrorCode, NmapDeckError

logger = logging.getLogger(__name__)

SCAN_PROGRESS = "scan-progress"
SCAN_COMPLETE = "scan-complete"
SCAN_TRUNCATED = "scan-truncated"


@dataclass
class RelayEvent:
    sequence: int
    scan_id: str
    event: str
    payload: Dict[str, Any]
    timestamp: float = field(default_factory=time.time)

    @property
    def is_terminal(self) -> bool:
        return self.event == SCAN_COMPLETE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "scanId": self.scan_id,
            "event": self.event,
            "data": self.payload,
            "timestamp": self.timestamp,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class _Channel:
    def __init__(self, history_size: int):
        self.events: Deque[RelayEvent] = deque(maxlen=history_size)
        self.subscribers: List[asyncio.Queue] = []
        self.sequence = 0
        self.closed = False


class ScanRelay:
    """
    Per-scan event channels with replay.

    Finished channels are kept (for late subscribers and reconnects) up to
    `retain_finished`, then evicted oldest-first.
    """

    def __init__(self, history_size: int = 5000, retain_finished: int = 50):
        self.history_size = history_size
        self.retain_finished = retain_finished
        self._channels: Dict[str, _Channel] = {}
        self._finished: "OrderedDict[str, None]" = OrderedDict()

    def open(self, scan_id: str) -> None:
        if scan_id not in self._channels:
            self._channels[scan_id] = _Channel(self.history_size)

    def has(self, scan_id: str) -> bool:
        return scan_id in self._channels

    def publish_progress(self, scan_id: str, stream: str, chunk: str) -> Optional[RelayEvent]:
        return self._publish(scan_id, SCAN_PROGRESS, {"type": stream, "data": chunk})

    def publish_complete(self, scan_id: str, payload: Dict[str, Any]) -> Optional[RelayEvent]:
        event = self._publish(scan_id, SCAN_COMPLETE, payload)
        if event is not None:
            channel = self._channels[scan_id]
            channel.closed = True
            self._finished[scan_id] = None
            self._evict()
        return event

    def history(self, scan_id: str, since: int = 0) -> Tuple[List[RelayEvent], bool]:
        """
        Buffered events with sequence > since.

        Returns:
            Tuple of (events, truncated) where truncated=True if events after
            `since` have already fallen out of the bounded buffer.
        """
        channel = self._channels.get(scan_id)
        if channel is None:
            return [], False
        oldest_seq = channel.events[0].sequence if channel.events else channel.sequence + 1
        truncated = since < oldest_seq - 1
        return [e for e in channel.events if e.sequence > since], truncated

    async def subscribe(self, scan_id: str, since: int = 0) -> AsyncIterator[RelayEvent]:
        """
        Async generator: buffered events after `since`, then live events,
        finishing with "scan-complete".
        """
        channel = self._channels.get(scan_id)
        if channel is None:
            raise NmapDeckError(ErrorCode.SCAN_NOT_FOUND, f"Unknown scan: {scan_id}", details={"scan_id": scan_id})

        # Register before taking the snapshot so nothing published while the
        # consumer works through the backlog is lost.
        queue: asyncio.Queue = asyncio.Queue()
        channel.subscribers.append(queue)
        backlog, truncated = self.history(scan_id, since)
        last_seq = since

        try:
            if truncated:
                first_seq = backlog[0].sequence if backlog else channel.sequence + 1
                dropped = first_seq - since - 1
                logger.warning(f"[Relay] Subscriber to {scan_id} missed {dropped} evicted event(s) after {since}")
                # Not buffered: tells this subscriber its replay has a gap
                last_seq = first_seq - 1
                yield RelayEvent(
                    sequence=last_seq,
                    scan_id=scan_id,
                    event=SCAN_TRUNCATED,
                    payload={"dropped": dropped, "since": since, "firstAvailable": first_seq},
                )

            for event in backlog:
                last_seq = event.sequence
                yield event
                if event.is_terminal:
                    return

            if channel.closed:
                return

            while True:
                event = await queue.get()
                if event.sequence <= last_seq:
                    continue
                last_seq = event.sequence
                yield event
                if event.is_terminal:
                    return
        finally:
            if queue in channel.subscribers:
                channel.subscribers.remove(queue)

    def stats(self) -> Dict[str, Any]:
        return {
            "channels": len(self._channels),
            "open_channels": sum(1 for c in self._channels.values() if not c.closed),
            "subscribers": sum(len(c.subscribers) for c in self._channels.values()),
        }

    def _publish(self, scan_id: str, event_name: str, payload: Dict[str, Any]) -> Optional[RelayEvent]:
        channel = self._channels.get(scan_id)
        if channel is None:
            logger.debug(f"[Relay] Dropping {event_name} for unknown scan {scan_id}")
            return None
        if channel.closed:
            logger.debug(f"[Relay] Dropping {event_name} for finished scan {scan_id}")
            return None

        channel.sequence += 1
        event = RelayEvent(sequence=channel.sequence, scan_id=scan_id, event=event_name, payload=payload)
        channel.events.append(event)
        for queue in list(channel.subscribers):
            queue.put_nowait(event)
        return event

    def _evict(self) -> None:
        while len(self._finished) > self.retain_finished:
            old_id, _ = self._finished.popitem(last=False)
            self._channels.pop(old_id, None)
            logger.debug(f"[Relay] Evicted finished channel {old_id}")
