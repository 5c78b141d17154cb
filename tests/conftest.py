"""Pytest configuration for nmapdeck."""
import asyncio
import os
import tempfile

import pytest

from nmapdeck.base.config import DeckConfig, ScannerConfig
from nmapdeck.engine.supervisor import START_FAILURE, ProcessResult


def pytest_configure():
    # Keep test runs off the user's home directory and away from log files.
    os.environ.setdefault("NMAPDECK_LOG_FILE", "false")
    os.environ.setdefault("NMAPDECK_DATA_DIR", tempfile.mkdtemp(prefix="nmapdeck-test-"))
    os.environ.setdefault("NMAPDECK_DEBUG", "true")


class FakeSupervisor:
    """
    Stands in for ProcessSupervisor: records every call and never spawns.

    - exit_codes: popped one per run (default 0)
    - start_failures: targets that "fail to start" (exit -1)
    - block: runs with a key wait until cancel(key) is called
    - explode: run() raises instead of returning
    """

    def __init__(self):
        self.calls = []
        self.exit_codes = []
        self.start_failures = set()
        self.block = False
        self.explode = False
        self.in_flight = 0
        self.max_in_flight = 0
        self._live = {}

    async def run(self, executable, args, sink=None, key=None, cancel_flag=None, timeout=None):
        self.calls.append([executable, *args])
        target = args[-1] if args else ""

        if self.explode:
            raise RuntimeError("boom")
        if target in self.start_failures:
            return ProcessResult(
                stdout="", stderr="", exit_code=START_FAILURE,
                error=f"Failed to start scan: {executable} not found",
            )

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            line = f"Nmap scan report for {target}\n"
            if sink:
                sink("stdout", line)

            if self.block and key is not None:
                killed = asyncio.Event()
                self._live[key] = killed
                if cancel_flag is not None and cancel_flag.is_set():
                    killed.set()
                await killed.wait()
                return ProcessResult(stdout=line, stderr="", exit_code=-15)

            # Yield so overlapping runs would show up in max_in_flight
            await asyncio.sleep(0)
            code = self.exit_codes.pop(0) if self.exit_codes else 0
            if code and sink:
                sink("stderr", "QUITTING!\n")
            return ProcessResult(stdout=line, stderr="", exit_code=code)
        finally:
            self.in_flight -= 1
            self._live.pop(key, None)

    def cancel(self, key):
        killed = self._live.get(key)
        if killed is None:
            return False
        killed.set()
        return True

    def is_live(self, key):
        return key in self._live

    def live_count(self):
        return len(self._live)


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def fake_supervisor():
    return FakeSupervisor()


@pytest.fixture
def local_config():
    """Run nmap directly (no docker exec) with a short kill grace."""
    return DeckConfig(scanner=ScannerConfig(container_name="", kill_grace_seconds=1.0))


@pytest.fixture
def eventually():
    """Async poller: `await eventually(lambda: ...)` fails after 2s."""
    return wait_until
