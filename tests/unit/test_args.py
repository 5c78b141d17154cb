"""
Unit tests for the nmap argument builder.
"""
import pytest

from nmapdeck.engine.models import ScanOptions
from nmapdeck.toolkit.args import (
    DEFAULT_TIMING,
    ScanType,
    build_args,
    format_command,
    normalize_ports,
    resolve_timing,
)


def test_quick_scan_without_ports_uses_fast_mode():
    args = build_args(ScanType.QUICK, ScanOptions())
    assert "-F" in args
    assert "-p" not in args
    assert args == ["-T4", "-F"]


@pytest.mark.parametrize(
    "scan_type,expected",
    [
        ("full", ["-T4", "-p-"]),
        ("os", ["-T4", "-O"]),
        ("version", ["-T4", "-sV"]),
        ("script", ["-T4", "-sC"]),
        ("comprehensive", ["-T4", "-A", "-p-"]),
    ],
)
def test_scan_type_flags(scan_type, expected):
    assert build_args(scan_type, {}) == expected


def test_typed_ports_replace_default_port_flags():
    args = build_args("full", {"ports": "22,80"})
    assert "-p-" not in args
    assert args == ["-T4", "-p", "22,80"]


def test_custom_scan_uses_only_typed_ports():
    assert build_args("custom", {"ports": "1-1024"}) == ["-T4", "-p", "1-1024"]


def test_flag_order_is_timing_type_ports_verbose_noping():
    options = ScanOptions(verbose=True, noPing=True, timing="2", ports="443")
    assert build_args("version", options) == ["-T2", "-sV", "-p", "443", "-v", "-Pn"]


def test_unknown_scan_type_adds_no_type_flag():
    assert build_args("stealthy", None) == ["-T4"]


def test_target_is_never_included():
    args = build_args("quick", {"ports": "80"})
    assert all(not a.startswith("10.") for a in args)


def test_ports_are_normalized():
    assert normalize_ports("80, 443 - 445") == "80,443-445"
    assert normalize_ports("  22 ,  80  ") == "22,80"
    assert normalize_ports("") == ""
    assert normalize_ports(None) == ""


@pytest.mark.parametrize("value,expected", [
    (0, 0),
    ("5", 5),
    (" 3 ", 3),
    (None, DEFAULT_TIMING),
    ("9", DEFAULT_TIMING),
    (-1, DEFAULT_TIMING),
    ("fast", DEFAULT_TIMING),
    (True, DEFAULT_TIMING),
])
def test_timing_resolution(value, expected):
    assert resolve_timing(value) == expected


def test_format_command_for_display():
    assert format_command(["-T4", "-F"], ["10.0.0.1"]) == "nmap -T4 -F 10.0.0.1"
    assert format_command(["-T4"], binary="/usr/bin/nmap") == "/usr/bin/nmap -T4"
