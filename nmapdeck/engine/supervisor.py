# ============================================================================
# nmapdeck/engine/supervisor.py
# Process Supervisor
# ============================================================================
#
# PURPOSE:
# Launches exactly one external process per call (nmap, or `docker exec ...`),
# streams its stdout/stderr chunks to a caller-supplied sink as they arrive,
# and resolves with the captured text and exit code once it exits.
#
# CONTRACT:
# - Never raises for start failures. If the process cannot be launched the
#   result has exit_code == -1 (START_FAILURE) and an `error` string, which
#   callers must treat as "could not start", distinct from nmap's own exit codes.
# - No retries.
# - cancel(key) sends SIGTERM to the live process registered under `key`
#   and escalates to SIGKILL after a grace period.
#
# ============================================================================

from __future__ import annotations

import asyncio
import codecs
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

START_FAILURE = -1

# sink(stream_name, text_chunk) where stream_name is "stdout" or "stderr"
OutputSink = Callable[[str, str], None]

_READ_SIZE = 4096


@dataclass
class ProcessResult:
    stdout: str
    stderr: str
    exit_code: int
    error: str = ""
    timed_out: bool = False

    @property
    def started(self) -> bool:
        return self.exit_code != START_FAILURE

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ProcessSupervisor:
    """
    Runs external processes and tracks the live one per key.

    The key is the scan id: the orchestrator never runs two processes for
    the same scan at once, so one slot per key is enough.
    """

    def __init__(self, kill_grace_seconds: float = 5.0):
        self.kill_grace_seconds = kill_grace_seconds
        self._live: Dict[str, asyncio.subprocess.Process] = {}

    async def run(
        self,
        executable: str,
        args: Sequence[str],
        sink: Optional[OutputSink] = None,
        key: Optional[str] = None,
        cancel_flag: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        """
        Run `executable args...` to completion.

        Args:
            executable: Program to launch (looked up on PATH).
            args: Arguments, passed to exec() as a list (no shell).
            sink: Called with ("stdout"|"stderr", chunk) for every chunk read.
            key: Registry key for cancel(); usually the scan id.
            cancel_flag: If already set once the process is up, it is
                         terminated immediately.
            timeout: Optional wall-clock limit in seconds (0/None = none).

        Returns:
            ProcessResult with captured output and exit code.
        """
        cmd = [executable, *args]
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            msg = f"Failed to start scan: {executable} not found ({exc})"
            logger.warning(f"[Supervisor] {msg}")
            return ProcessResult(stdout="", stderr="", exit_code=START_FAILURE, error=msg)
        except (PermissionError, OSError, ValueError) as exc:
            msg = f"Failed to start scan: {exc}"
            logger.warning(f"[Supervisor] {msg}")
            return ProcessResult(stdout="", stderr="", exit_code=START_FAILURE, error=msg)

        logger.info(f"[Supervisor] Started PID {proc.pid}: {' '.join(cmd)}")
        if key is not None:
            self._live[key] = proc

        stdout_parts: List[str] = []
        stderr_parts: List[str] = []
        timed_out = False

        try:
            # stop() may have landed while create_subprocess_exec was pending
            if cancel_flag is not None and cancel_flag.is_set():
                self._terminate(proc)

            pumps = asyncio.gather(
                self._pump(proc.stdout, "stdout", stdout_parts, sink),
                self._pump(proc.stderr, "stderr", stderr_parts, sink),
            )
            if timeout and timeout > 0:
                try:
                    await asyncio.wait_for(pumps, timeout=timeout)
                except asyncio.TimeoutError:
                    timed_out = True
                    logger.warning(f"[Supervisor] PID {proc.pid} exceeded {timeout}s; terminating")
                    self._terminate(proc)
            else:
                await pumps

            exit_code = await self._reap(proc)
        except asyncio.CancelledError:
            # Our caller went away; do not leave an orphaned scan behind.
            self._terminate(proc)
            raise
        finally:
            if key is not None and self._live.get(key) is proc:
                del self._live[key]

        logger.info(f"[Supervisor] PID {proc.pid} exited with code {exit_code}")
        return ProcessResult(
            stdout="".join(stdout_parts),
            stderr="".join(stderr_parts),
            exit_code=exit_code,
            error=f"Process exceeded time limit of {timeout}s" if timed_out else "",
            timed_out=timed_out,
        )

    def cancel(self, key: str) -> bool:
        """
        Terminate the live process registered under `key`.

        Returns:
            True if a signal was sent, False if nothing was live ("not found").
        """
        proc = self._live.get(key)
        if proc is None or proc.returncode is not None:
            return False
        logger.info(f"[Supervisor] Cancelling PID {proc.pid} ({key})")
        self._terminate(proc)
        return True

    def live_count(self) -> int:
        return sum(1 for proc in self._live.values() if proc.returncode is None)

    def is_live(self, key: str) -> bool:
        proc = self._live.get(key)
        return proc is not None and proc.returncode is None

    async def _pump(
        self,
        stream: Optional[asyncio.StreamReader],
        name: str,
        parts: List[str],
        sink: Optional[OutputSink],
    ) -> None:
        if stream is None:
            return
        # Incremental decoder: a multi-byte character may straddle two reads
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(_READ_SIZE)
            if not data:
                tail = decoder.decode(b"", final=True)
                if tail:
                    self._deliver(name, tail, parts, sink)
                return
            text = decoder.decode(data)
            if text:
                self._deliver(name, text, parts, sink)

    @staticmethod
    def _deliver(name: str, text: str, parts: List[str], sink: Optional[OutputSink]) -> None:
        parts.append(text)
        if sink is not None:
            try:
                sink(name, text)
            except Exception as exc:
                # A broken subscriber must not kill the scan; output is still captured.
                logger.error(f"[Supervisor] Output sink failed: {exc}", exc_info=True)

    async def _reap(self, proc: asyncio.subprocess.Process) -> int:
        try:
            return await asyncio.wait_for(proc.wait(), timeout=self.kill_grace_seconds)
        except asyncio.TimeoutError:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            return await proc.wait()

    def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        # Escalate if SIGTERM is ignored; the pipes stay open until the process dies.
        loop = asyncio.get_running_loop()
        loop.call_later(self.kill_grace_seconds, self._kill_if_alive, proc)

    @staticmethod
    def _kill_if_alive(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
