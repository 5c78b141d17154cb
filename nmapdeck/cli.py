"""
nmapdeck command line.

Usage examples:
    python -m nmapdeck.cli serve --port 1337
    python -m nmapdeck.cli scan 10.0.0.1 10.0.0.2 --type version --delay 5
"""

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError

from nmapdeck.base.config import get_config, setup_logging
from nmapdeck.engine.relay import SCAN_COMPLETE, SCAN_PROGRESS
from nmapdeck.errors import NmapDeckError
from nmapdeck.engine.models import ScanRequest
from nmapdeck.server.state import ApplicationState
from nmapdeck.toolkit.args import ScanType

logger = logging.getLogger(__name__)

MSG_INTERRUPTED = "Scan interrupted."


def run_server(args):
    """Start the HTTP API."""
    from nmapdeck.server.api import serve

    config = get_config()
    print(f"Starting nmapdeck API on {args.host or config.api_host}:{args.port or config.api_port}")
    serve(port=args.port, host=args.host)


async def _scan(request: ScanRequest) -> int:
    state = ApplicationState()
    job = state.orchestrator.start(request)
    print(f"$ {job.command}", file=sys.stderr)

    code = 1
    try:
        async for event in state.relay.subscribe(job.scan_id):
            if event.event == SCAN_COMPLETE:
                print(event.payload["message"], file=sys.stderr)
                code = event.payload["code"]
                continue
            if event.event != SCAN_PROGRESS:
                continue
            stream = sys.stderr if event.payload["type"] == "stderr" else sys.stdout
            stream.write(event.payload["data"])
            stream.flush()
    finally:
        # Ctrl-C cancels us mid-scan; make sure nmap does not outlive the CLI
        await state.shutdown()
    logger.info(f"[CLI] Scan {job.scan_id} finished with code {code}")
    return code


def run_scan(args):
    """Run one scan in the foreground and stream its output to the terminal."""
    try:
        request = ScanRequest(
            target=" ".join(args.target),
            scanType=args.type,
            options={
                "verbose": args.verbose,
                "noPing": args.no_ping,
                "timing": args.timing,
                "ports": args.ports or "",
                "delaySeconds": args.delay,
            },
        )
    except ValidationError as e:
        for err in e.errors():
            print(f"error: {str(err['msg']).removeprefix('Value error, ')}", file=sys.stderr)
        return 2

    try:
        return asyncio.run(_scan(request))
    except NmapDeckError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print(MSG_INTERRUPTED, file=sys.stderr)
        return 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nmapdeck", description="nmap web relay")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Serve Command
    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default=None, help="Bind address (default from NMAPDECK_API_HOST)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default from NMAPDECK_API_PORT)")
    serve_parser.set_defaults(func=run_server)

    # Scan Command
    scan_parser = subparsers.add_parser("scan", help="Run a scan without the web UI")
    scan_parser.add_argument("target", nargs="+", help="Hosts, IPs, CIDR blocks or ranges")
    scan_parser.add_argument(
        "--type",
        default=ScanType.QUICK.value,
        choices=[t.value for t in ScanType],
        help="Scan profile",
    )
    scan_parser.add_argument("--ports", help="Port list, e.g. 22,80,443 or 1-1024")
    scan_parser.add_argument("--timing", type=int, default=None, help="Timing template 0-5 (default 4)")
    scan_parser.add_argument("-v", "--verbose", action="store_true", help="Pass -v to nmap")
    scan_parser.add_argument("--no-ping", action="store_true", help="Pass -Pn to nmap")
    scan_parser.add_argument("--delay", type=int, default=0, help="Seconds to wait between targets")
    scan_parser.set_defaults(func=run_scan)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 0

    setup_logging(get_config())
    return args.func(args) or 0


if __name__ == "__main__":
    sys.exit(main())
