"""
nmapdeck/engine/models.py

Purpose:
    Data structures shared by the API layer and the scan engine.

Semantics:
    - ScanOptions / ScanRequest: validated client input (pydantic). Field
      names follow the browser's camelCase payload through aliases.
    - ScanJob: mutable runtime record of one accepted request. Output is
      append-only; `completed` flips to True exactly once.
    - ScanOutcome: the aggregate result carried by the completion event.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from nmapdeck.errors import ErrorCode, NmapDeckError
from nmapdeck.toolkit.args import ScanType, normalize_ports
from nmapdeck.toolkit.targets import normalize_targets

# Shell metacharacters never appear in a legitimate nmap target. Arguments go
# to exec() as a list, so this is about rejecting garbage early, not quoting.
DANGEROUS_PATTERNS = [";", "&&", "||", "`", "$(", "|", ">", "<"]


def target_problem(raw: Optional[str]) -> Optional[str]:
    """Return a reason the target field is unusable, or None."""
    normalized = normalize_targets(raw)
    if not normalized:
        return "Please enter a target!"
    for pattern in DANGEROUS_PATTERNS:
        if pattern in normalized:
            return f"Invalid character in target: {pattern}"
    for token in normalized.split(" "):
        # A leading dash would be parsed by nmap as an option
        if token.startswith("-"):
            return f"Invalid target (looks like an option): {token}"
    return None


def ports_problem(scan_type: Union[ScanType, str, None], ports: Optional[str]) -> Optional[str]:
    kind = scan_type.value if isinstance(scan_type, ScanType) else scan_type
    if kind == ScanType.CUSTOM.value and not normalize_ports(ports):
        return "Custom scan type requires port specification!"
    return None


class ScanOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    verbose: bool = False
    no_ping: bool = Field(False, alias="noPing")
    # "0".."5" from the form select, or an int from API clients. Kept raw:
    # resolve_timing() maps anything else (true, 2.5, "fast") to -T4.
    timing: Any = None
    ports: str = ""
    delay_seconds: int = Field(
        0,
        ge=0,
        validation_alias=AliasChoices("delaySeconds", "delay", "delay_seconds"),
        serialization_alias="delaySeconds",
    )

    @field_validator("ports", mode="before")
    @classmethod
    def coerce_ports(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v)

    @field_validator("delay_seconds", mode="before")
    @classmethod
    def coerce_delay(cls, v: Any) -> Any:
        # The form sends parseInt(...) || 0, which can still be "" or null
        if v is None or v == "":
            return 0
        return v


class ScanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    target: str = Field(..., min_length=1, max_length=4096)
    scan_type: ScanType = Field(ScanType.QUICK, alias="scanType")
    options: ScanOptions = Field(default_factory=ScanOptions)
    # Opaque to the backend; echoed back in the completion event
    theme: Optional[str] = None

    @field_validator("target")
    @classmethod
    def validate_target(cls, v: str) -> str:
        problem = target_problem(v)
        if problem:
            raise ValueError(problem)
        return v

    @model_validator(mode="after")
    def require_ports_for_custom(self) -> "ScanRequest":
        problem = ports_problem(self.scan_type, self.options.ports)
        if problem:
            raise ValueError(problem)
        return self

    def check(self) -> None:
        """
        Re-run the request-level rules, raising NmapDeckError.

        Pydantic already enforces these on construction; this covers requests
        built with model_construct() or mutated afterwards.
        """
        problem = target_problem(self.target)
        if problem:
            raise NmapDeckError(ErrorCode.SCAN_TARGET_INVALID, problem, details={"target": self.target})
        problem = ports_problem(self.scan_type, self.options.ports)
        if problem:
            raise NmapDeckError(
                ErrorCode.SCAN_PORTS_REQUIRED,
                problem,
                details={"scan_type": str(self.scan_type)},
            )


@dataclass
class ScanOutcome:
    """Aggregate result of a ScanJob, delivered with the completion event."""
    scan_id: str
    success: bool
    exit_code: int
    output: str
    error: str
    stopped: bool = False
    message: str = ""
    theme: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scanId": self.scan_id,
            "success": self.success,
            "exitCode": self.exit_code,
            # The browser client reads `code`
            "code": self.exit_code,
            "output": self.output,
            "error": self.error,
            "stopped": self.stopped,
            "message": self.message,
            "theme": self.theme,
        }


@dataclass
class ScanJob:
    """
    Runtime state for one accepted scan request.

    Spans one or more sequential nmap invocations (one per entry in
    `targets`). Only the orchestrator mutates it, always from the event loop.
    """
    scan_id: str
    base_args: List[str]
    targets: List[str]
    command: str
    delay_seconds: int = 0
    theme: Optional[str] = None

    cursor: int = 0
    exit_codes: List[int] = field(default_factory=list)
    completed: bool = False
    stopped: bool = False
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    # Cancellation token checked between targets and during the delay
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None
    outcome: Optional[ScanOutcome] = None

    _stdout: List[str] = field(default_factory=list, repr=False, init=False)
    _stderr: List[str] = field(default_factory=list, repr=False, init=False)

    @property
    def output(self) -> str:
        return "".join(self._stdout)

    @property
    def error(self) -> str:
        return "".join(self._stderr)

    def append(self, stream: str, chunk: str) -> None:
        if stream == "stderr":
            self._stderr.append(chunk)
        else:
            self._stdout.append(chunk)

    def mark_completed(self) -> bool:
        """Flip `completed` to True. Returns False if it already was."""
        if self.completed:
            return False
        self.completed = True
        self.finished_at = time.time()
        return True

    def request_stop(self) -> bool:
        if not self.mark_completed():
            return False
        self.stopped = True
        self.stop_event.set()
        return True

    @property
    def all_succeeded(self) -> bool:
        return bool(self.exit_codes) and all(code == 0 for code in self.exit_codes)

    def summary(self) -> Dict[str, Any]:
        return {
            "scanId": self.scan_id,
            "command": self.command,
            "targets": len(self.targets),
            "cursor": self.cursor,
            "completed": self.completed,
            "stopped": self.stopped,
            "startedAt": self.started_at,
        }
