# ============================================================================
# nmapdeck/engine/scan_orchestrator.py
# Scan Orchestrator
# ============================================================================
#
# PURPOSE:
# Turns an accepted ScanRequest into one or more sequential nmap runs and
# reports the aggregate result.
#
# STATE MACHINE (per ScanJob):
#   Idle -> Running(target i) -> Completed | Stopped
#
# FLOW:
# 1. start(): validate, build flags, plan targets, register the job and
#    schedule the background run. Returns immediately (the API answers the
#    POST with scanId + command while nmap is still running).
# 2. For each target, strictly one at a time: emit a boundary marker, run
#    nmap with the target appended, relay every chunk, record the exit code,
#    then wait `delay_seconds` (interruptible by stop) if more targets remain.
# 3. Exactly one "scan-complete" event closes the scan. success is True
#    only if every run exited 0; code is 0 or 1.
#
# STOP CONTRACT:
# stop() deregisters the job immediately, terminates the live process and
# skips remaining targets and any pending delay. The run loop still emits the
# single completion event, with success=False, code=1 and stopped=True.
#
# FAILURES:
# A target that fails to start (exit -1) or exits non-zero does not abort
# the remaining targets; the failure is appended to the error text and
# folded into the aggregate. Nothing here raises past the orchestrator.
#
# ============================================================================

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Tuple

from nmapdeck.base.config import ScannerConfig
from nmapdeck.engine.models import ScanJob, ScanOutcome, ScanRequest
from nmapdeck.engine.registry import ScanIdFactory, ScanRegistry
from nmapdeck.engine.relay import ScanRelay
from nmapdeck.engine.supervisor import START_FAILURE, ProcessSupervisor
from nmapdeck.errors import ErrorCode, NmapDeckError, handle_error
from nmapdeck.toolkit.args import build_args, format_command
from nmapdeck.toolkit.targets import plan_targets

logger = logging.getLogger(__name__)

# Display messages shown by the browser next to the scan result
MSG_SUCCESS = "The scan is complete. Impressive... most impressive."
MSG_FAILURE = "I find your lack of scanning... disturbing."
MSG_START_FAILURE = "I find your lack of Docker... disturbing."
MSG_STOPPED = "Scan terminated by the Dark Side."


class ScanOrchestrator:
    """
    Runs ScanJobs. Many jobs may run concurrently; within a job the targets
    run strictly sequentially.

    Args:
        supervisor: ProcessSupervisor used to launch nmap.
        relay: ScanRelay receiving progress/completion events.
        registry: ScanRegistry owning the scan_id -> ScanJob map.
        config: Scanner settings (binary, container, timeouts).
        id_factory: Callable producing unique scan ids.
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        relay: ScanRelay,
        registry: ScanRegistry,
        config: Optional[ScannerConfig] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self.supervisor = supervisor
        self.relay = relay
        self.registry = registry
        self.config = config or ScannerConfig()
        self._new_id = id_factory or ScanIdFactory()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self, request: ScanRequest) -> ScanJob:
        """
        Accept a scan request and schedule it on the running event loop.

        Raises:
            NmapDeckError: if the request fails validation. No job is
                           created in that case.
        """
        request.check()

        delay = request.options.delay_seconds
        if delay > self.config.max_delay_seconds:
            raise NmapDeckError(
                ErrorCode.SCAN_REQUEST_INVALID,
                f"Delay between targets cannot exceed {self.config.max_delay_seconds}s",
                details={"delay_seconds": delay},
            )

        base_args = build_args(request.scan_type, request.options)
        targets = plan_targets(request.target, delay)
        if not targets:
            raise NmapDeckError(ErrorCode.SCAN_TARGET_INVALID, "Please enter a target!")

        job = ScanJob(
            scan_id=self._new_id(),
            base_args=base_args,
            targets=targets,
            command=format_command(base_args, targets, binary=self.config.nmap_binary),
            delay_seconds=delay,
            theme=request.theme,
        )
        return self.submit(job)

    def submit(self, job: ScanJob) -> ScanJob:
        """
        Register an already-planned job and schedule its run loop.

        start() is the normal entry point; use this when the target list is
        already decided (one nmap run per entry).
        """
        loop = asyncio.get_running_loop()
        self.registry.register(job)
        self.relay.open(job.scan_id)
        job.task = loop.create_task(self._run(job), name=f"scan-{job.scan_id}")

        logger.info(
            f"[Orchestrator] Scan {job.scan_id} accepted: {job.command} "
            f"({len(job.targets)} run(s), delay={job.delay_seconds}s)"
        )
        return job

    def stop(self, scan_id: str) -> bool:
        """
        Stop a running scan.

        Returns:
            True if the scan was found and stopped, False if no such scan is
            registered (unknown id, already finished, or already stopped).
        """
        job = self.registry.get(scan_id)
        if job is None:
            return False

        job.request_stop()
        killed = self.supervisor.cancel(scan_id)
        self.registry.unregister(scan_id, job)
        logger.info(
            f"[Orchestrator] Scan {scan_id} stopped at target {job.cursor + 1}/{len(job.targets)}"
            f"{' (process terminated)' if killed else ''}"
        )
        return True

    def get(self, scan_id: str) -> Optional[ScanJob]:
        return self.registry.get(scan_id)

    def active_jobs(self) -> List[ScanJob]:
        return self.registry.jobs()

    @property
    def active_count(self) -> int:
        return self.registry.active_count

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop every active scan and wait for their run loops to finish."""
        jobs = self.registry.jobs()
        if not jobs:
            return
        logger.info(f"[Orchestrator] Shutting down {len(jobs)} active scan(s)")
        for job in jobs:
            self.stop(job.scan_id)

        tasks = [job.task for job in jobs if job.task is not None]
        if not tasks:
            return
        wait_for = timeout if timeout is not None else self.config.kill_grace_seconds + 1.0
        done, pending = await asyncio.wait(tasks, timeout=wait_for)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def _run(self, job: ScanJob) -> None:
        total = len(job.targets)
        try:
            for index, target in enumerate(job.targets):
                if job.stopped:
                    break
                job.cursor = index
                self._emit(job, "stdout", f"[*] Target {index + 1}/{total}: {target}\n")

                result = await self.supervisor.run(
                    *self._command_for(job, target),
                    sink=lambda stream, chunk: self._emit(job, stream, chunk),
                    key=job.scan_id,
                    cancel_flag=job.stop_event,
                    timeout=self.config.process_timeout_seconds,
                )
                job.exit_codes.append(result.exit_code)

                if result.error:
                    self._emit(job, "stderr", f"[!] {target}: {result.error}\n")
                elif result.exit_code != 0 and not job.stopped:
                    self._emit(job, "stderr", f"[!] {target}: nmap exited with code {result.exit_code}\n")

                is_last = index == total - 1
                if not is_last and job.delay_seconds > 0 and not job.stopped:
                    self._emit(job, "stdout", f"[*] Waiting {job.delay_seconds}s before next target...\n")
                    await self._pause(job)

        except Exception as exc:
            err = handle_error(exc, context="Internal error")
            logger.error(f"[Orchestrator] Scan {job.scan_id} crashed: {err}", exc_info=True)
            self._emit(job, "stderr", f"[!] {err.message}\n")
        finally:
            self._finish(job)

    async def _pause(self, job: ScanJob) -> None:
        # Wakes early when stop() sets the event; never blocks the loop.
        try:
            await asyncio.wait_for(job.stop_event.wait(), timeout=job.delay_seconds)
        except asyncio.TimeoutError:
            pass

    def _command_for(self, job: ScanJob, target: str) -> Tuple[str, List[str]]:
        prefix = self.config.command_prefix()
        return prefix[0], [*prefix[1:], *job.base_args, target]

    def _emit(self, job: ScanJob, stream: str, chunk: str) -> None:
        job.append(stream, chunk)
        self.relay.publish_progress(job.scan_id, stream, chunk)

    def _finish(self, job: ScanJob) -> None:
        job.mark_completed()

        ran_everything = len(job.exit_codes) == len(job.targets)
        success = not job.stopped and ran_everything and job.all_succeeded

        if job.stopped:
            message = MSG_STOPPED
        elif success:
            message = MSG_SUCCESS
        elif START_FAILURE in job.exit_codes:
            message = MSG_START_FAILURE
        else:
            message = MSG_FAILURE

        job.outcome = ScanOutcome(
            scan_id=job.scan_id,
            success=success,
            exit_code=0 if success else 1,
            output=job.output,
            error=job.error,
            stopped=job.stopped,
            message=message,
            theme=job.theme,
        )
        self.registry.unregister(job.scan_id, job)
        self.relay.publish_complete(job.scan_id, job.outcome.to_dict())

        logger.info(
            f"[Orchestrator] Scan {job.scan_id} finished: success={success} "
            f"stopped={job.stopped} exit_codes={job.exit_codes}"
        )
