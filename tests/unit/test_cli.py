from unittest.mock import patch

import pytest

from nmapdeck.cli import build_parser, main
from nmapdeck.engine.scan_orchestrator import MSG_FAILURE, MSG_SUCCESS
from nmapdeck.server.state import ApplicationState


@pytest.fixture(autouse=True)
def quiet_logging():
    # main() reconfigures the root logger; keep that out of pytest's capture
    with patch("nmapdeck.cli.setup_logging"):
        yield


def test_scan_arguments_parse():
    args = build_parser().parse_args(
        ["scan", "10.0.0.1", "10.0.0.2", "--type", "version", "--delay", "5", "-v", "--no-ping"]
    )
    assert args.target == ["10.0.0.1", "10.0.0.2"]
    assert args.type == "version"
    assert args.delay == 5
    assert args.verbose and args.no_ping


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage" in capsys.readouterr().out


def test_invalid_scan_exits_2(capsys):
    assert main(["scan", "10.0.0.1", "--type", "custom"]) == 2
    err = capsys.readouterr().err
    assert err == "error: Custom scan type requires port specification!\n"


def test_blank_target_message_is_readable(capsys):
    assert main(["scan", " , "]) == 2
    assert capsys.readouterr().err == "error: Please enter a target!\n"


def test_headless_scan_streams_output_and_exit_code(capsys, local_config, fake_supervisor):
    with patch("nmapdeck.cli.ApplicationState",
               lambda: ApplicationState(config=local_config, supervisor=fake_supervisor)):
        code = main(["scan", "scanme.nmap.org", "--ports", "22, 80"])

    out, err = capsys.readouterr()
    assert code == 0
    assert "Nmap scan report for scanme.nmap.org" in out
    assert "$ nmap -T4 -p 22,80 scanme.nmap.org" in err
    assert MSG_SUCCESS in err
    assert fake_supervisor.calls == [["nmap", "-T4", "-p", "22,80", "scanme.nmap.org"]]


def test_headless_scan_failure_exits_1(capsys, local_config, fake_supervisor):
    fake_supervisor.exit_codes = [1]
    with patch("nmapdeck.cli.ApplicationState",
               lambda: ApplicationState(config=local_config, supervisor=fake_supervisor)):
        code = main(["scan", "10.0.0.1"])

    assert code == 1
    assert MSG_FAILURE in capsys.readouterr().err
