"""
nmapdeck/toolkit/targets.py
Target field normalization.

The target box accepts anything nmap accepts (hosts, IPs, CIDR blocks,
ranges) separated by spaces, commas or newlines. Without an inter-target
delay the cleaned string goes to nmap as a single argument and nmap expands
it itself. With a delay the orchestrator needs discrete targets to pace
between, so the string is exploded into tokens.
"""

from __future__ import annotations

import re
from typing import List, Optional

_SEPARATORS = re.compile(r"[\r\n,]")
_WHITESPACE = re.compile(r"\s+")


def normalize_targets(raw: Optional[str]) -> str:
    """Newlines and commas become spaces; whitespace runs collapse; ends trimmed."""
    if not raw:
        return ""
    cleaned = _SEPARATORS.sub(" ", raw)
    return _WHITESPACE.sub(" ", cleaned).strip()


def split_targets(raw: Optional[str]) -> List[str]:
    """
    Explode a target field into individual targets.

    >>> split_targets("10.0.0.1, 10.0.0.2\\n10.0.0.3")
    ['10.0.0.1', '10.0.0.2', '10.0.0.3']
    """
    return [token for token in normalize_targets(raw).split(" ") if token]


def plan_targets(raw: Optional[str], delay_seconds: Optional[int] = 0) -> List[str]:
    """
    Decide what the orchestrator iterates over.

    delay_seconds > 0  -> one entry per target (paced, sequential runs)
    otherwise          -> the whole cleaned string as a single entry
    """
    if delay_seconds and delay_seconds > 0:
        return split_targets(raw)
    normalized = normalize_targets(raw)
    return [normalized] if normalized else []
