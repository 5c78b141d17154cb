# ============================================================================
# nmapdeck/toolkit/args.py
# nmap Argument Builder
# ============================================================================
#
# PURPOSE:
# Turns the scan form (scan type + a handful of options) into the list of
# nmap flags. The target is NOT part of the list: the orchestrator appends
# one target per invocation so the same base list can be reused across a
# sequence of single-target runs.
#
# FLAG ORDER:
#   timing (-T0..-T5)  ->  scan-type flag  ->  ports  ->  -v  ->  -Pn
#
# ============================================================================

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Iterable, List, Optional, Union

DEFAULT_TIMING = 4


class ScanType(str, Enum):
    QUICK = "quick"
    FULL = "full"
    OS = "os"
    VERSION = "version"
    SCRIPT = "script"
    COMPREHENSIVE = "comprehensive"
    CUSTOM = "custom"


# Scan-type specific flags (port flags are handled separately)
SCAN_TYPE_FLAGS = {
    ScanType.OS.value: ["-O"],
    ScanType.VERSION.value: ["-sV"],
    ScanType.SCRIPT.value: ["-sC"],
    ScanType.COMPREHENSIVE.value: ["-A"],
}

# Port flags used when the user did not type a port list
DEFAULT_PORT_FLAGS = {
    ScanType.QUICK.value: ["-F"],           # top 100 ports
    ScanType.FULL.value: ["-p-"],           # all 65535
    ScanType.COMPREHENSIVE.value: ["-p-"],
}

_SPACE_AROUND_COMMA = re.compile(r"\s*,\s*")
_SPACE_AROUND_HYPHEN = re.compile(r"\s*-\s*")
_WHITESPACE = re.compile(r"\s+")


def _scan_type_value(scan_type: Union[ScanType, str, None]) -> str:
    if isinstance(scan_type, ScanType):
        return scan_type.value
    return scan_type or ""


def resolve_timing(timing: Any) -> int:
    """
    Map the timing option onto nmap's 0-5 template range.

    Absent, non-numeric, or out-of-range values fall back to DEFAULT_TIMING.
    """
    if timing is None or isinstance(timing, bool):
        return DEFAULT_TIMING
    try:
        value = int(str(timing).strip())
    except ValueError:
        return DEFAULT_TIMING
    if 0 <= value <= 5:
        return value
    return DEFAULT_TIMING


def normalize_ports(raw: Optional[str]) -> str:
    """
    Tighten a user-typed port list so nmap accepts it.

    "80, 443 - 445"  ->  "80,443-445"
    """
    if not raw:
        return ""
    ports = raw.strip()
    ports = _SPACE_AROUND_COMMA.sub(",", ports)
    ports = _SPACE_AROUND_HYPHEN.sub("-", ports)
    return _WHITESPACE.sub("", ports)


def _option(options: Any, name: str, default: Any = None) -> Any:
    # Accept the pydantic model, a plain dict, or None.
    if options is None:
        return default
    if isinstance(options, dict):
        return options.get(name, default)
    return getattr(options, name, default)


def build_args(scan_type: Union[ScanType, str, None], options: Any = None) -> List[str]:
    """
    Build the nmap flag list for a scan.

    Args:
        scan_type: One of ScanType (or its string value). Unknown values add
                   no scan-type flag rather than raising.
        options: ScanOptions model or dict with verbose / no_ping / timing / ports.

    Returns:
        Ordered list of command-line tokens, without the target.
    """
    kind = _scan_type_value(scan_type)
    args: List[str] = [f"-T{resolve_timing(_option(options, 'timing'))}"]

    args.extend(SCAN_TYPE_FLAGS.get(kind, []))

    ports = normalize_ports(_option(options, "ports", ""))
    if ports:
        # A typed port list always wins over the scan-type default
        args.extend(["-p", ports])
    else:
        args.extend(DEFAULT_PORT_FLAGS.get(kind, []))

    if _option(options, "verbose", False):
        args.append("-v")
    if _option(options, "no_ping", False):
        args.append("-Pn")

    return args


def format_command(args: Iterable[str], targets: Iterable[str] = (), binary: str = "nmap") -> str:
    """Human-readable command line for display (never executed)."""
    return " ".join([binary, *args, *targets])
