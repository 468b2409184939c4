#!/usr/bin/env python3
"""TCP diagnostic tool: report server and drive simulator."""

import argparse
import logging
import sys

from client.runner import run_client
from common.device import DEFAULT_BAUDRATE, tcp_url
from common.protocol import DEFAULT_HOST, DEFAULT_POLL_TIMEOUT_S, DEFAULT_PORT, TRACE, SendMode
from server.loop import ServerConfig
from server.runner import run_server

logger = logging.getLogger(__name__)


def _log_level(verbose: int) -> int:
    if verbose >= 2:
        return TRACE
    if verbose == 1:
        return logging.DEBUG
    return logging.INFO


def _add_verbose_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log detail (-v debug, -vv packet trace)",
    )


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Listen for drive connections and decode status/fault reports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s server -p 5000                      Listen, send hex bytes typed on stdin
  %(prog)s server -p 5000 --send-mode text     Send typed lines as text + CRLF
  %(prog)s simulate --port 5000                Answer as a drive on localhost:5000
  %(prog)s simulate --url /dev/ttyUSB0         Answer over a serial port
""",
    )
    subparsers = parser.add_subparsers(dest="mode")

    server_parser = subparsers.add_parser("server", help="Run the report server")
    server_parser.add_argument(
        "-p", "--port", type=int, default=DEFAULT_PORT, help=f"Listening port (default: {DEFAULT_PORT})"
    )
    server_parser.add_argument(
        "--host", type=str, default=DEFAULT_HOST, help=f"Bind address (default: {DEFAULT_HOST})"
    )
    server_parser.add_argument(
        "-m",
        "--send-mode",
        type=str,
        choices=[m.value for m in SendMode],
        default=SendMode.HEX.value,
        help="How stdin lines are sent (default: hex)",
    )
    server_parser.add_argument(
        "--no-decode", action="store_true", help="Do not decode received data as reports"
    )
    server_parser.add_argument(
        "--poll-timeout",
        type=float,
        default=DEFAULT_POLL_TIMEOUT_S,
        help=f"Poll timeout in seconds (default: {DEFAULT_POLL_TIMEOUT_S})",
    )
    _add_verbose_arg(server_parser)

    sim_parser = subparsers.add_parser("simulate", help="Run the drive simulator")
    sim_parser.add_argument(
        "-u", "--url", type=str, help="pyserial URL or device path (overrides --host/--port)"
    )
    sim_parser.add_argument("--host", type=str, default="127.0.0.1", help="Server host")
    sim_parser.add_argument("-p", "--port", type=int, default=DEFAULT_PORT, help="Server port")
    sim_parser.add_argument(
        "-b",
        "--baudrate",
        type=int,
        default=DEFAULT_BAUDRATE,
        help=f"Baud rate for serial devices (default: {DEFAULT_BAUDRATE})",
    )
    sim_parser.add_argument(
        "-t",
        "--duration",
        type=float,
        default=0,
        help="Seconds to run, 0 = until disconnect (default: 0)",
    )
    _add_verbose_arg(sim_parser)

    args = parser.parse_args()

    if args.mode is None:
        parser.print_help()
        return 2

    logging.basicConfig(
        level=_log_level(args.verbose),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.mode == "server":
        config = ServerConfig(
            host=args.host,
            send_mode=SendMode(args.send_mode),
            poll_timeout_s=args.poll_timeout,
            decode_reports=not args.no_decode,
        )
        return run_server(args.port, config)

    url = args.url or tcp_url(args.host, args.port)
    return run_client(url, args.duration, args.baudrate)


if __name__ == "__main__":
    sys.exit(main())
