"""
nmapdeck/engine/registry.py
scan_id -> ScanJob bookkeeping.

One instance is owned by the application state and injected into the
orchestrator. It is only touched from the event loop and every method is
synchronous, so each mutation completes within a single loop turn and no
lock is needed.
"""

from __future__ import annotations

import itertools
import logging
import time
from typing import Dict, List, Optional

from nmapdeck.engine.models import ScanJob
from nmapdeck.errors import ErrorCode, NmapDeckError

logger = logging.getLogger(__name__)


class ScanIdFactory:
    """
    Time-derived, unique-by-construction scan ids.

    Millisecond timestamp (what the browser client has always seen) plus a
    process-wide counter, so two requests in the same millisecond differ.
    """

    def __init__(self):
        self._counter = itertools.count(1)

    def __call__(self) -> str:
        return f"{int(time.time() * 1000)}-{next(self._counter)}"


class ScanRegistry:
    def __init__(self):
        self._jobs: Dict[str, ScanJob] = {}

    def register(self, job: ScanJob) -> None:
        if job.scan_id in self._jobs:
            raise NmapDeckError(
                ErrorCode.SCAN_ALREADY_REGISTERED,
                f"Scan id already in use: {job.scan_id}",
                details={"scan_id": job.scan_id},
            )
        self._jobs[job.scan_id] = job
        logger.debug(f"[Registry] Registered {job.scan_id} ({len(self._jobs)} active)")

    def get(self, scan_id: str) -> Optional[ScanJob]:
        return self._jobs.get(scan_id)

    def unregister(self, scan_id: str, job: Optional[ScanJob] = None) -> bool:
        """
        Remove a scan. When `job` is given, only remove it if the registered
        entry is that exact job.
        """
        current = self._jobs.get(scan_id)
        if current is None or (job is not None and current is not job):
            return False
        del self._jobs[scan_id]
        logger.debug(f"[Registry] Unregistered {scan_id} ({len(self._jobs)} active)")
        return True

    def __contains__(self, scan_id: str) -> bool:
        return scan_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    @property
    def active_count(self) -> int:
        return len(self._jobs)

    def jobs(self) -> List[ScanJob]:
        return list(self._jobs.values())
