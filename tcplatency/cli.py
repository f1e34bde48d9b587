"""
cli.py — Command Line Entry Point
==================================

    sudo tcp-latency example.com
    sudo tcp-latency -p 443 -i wlan0 192.0.2.10
    sudo tcp-latency -a

Raw sockets require root (or CAP_NET_RAW).
"""

import argparse
import logging
import sys
from typing import List, Optional

from tcplatency.core.addresses import validate_port
from tcplatency.core.errors import LatencyError
from tcplatency.tools.interfaces import choose_interface, interface_address
from tcplatency.tools.latency import DEFAULT_PORT, auto_test, latency

log = logging.getLogger("tcplatency")


def setup_logging(verbose: bool) -> logging.Logger:
    log.propagate = False
    log.handlers.clear()
    log.setLevel(logging.DEBUG if verbose else logging.WARNING)

    ch = logging.StreamHandler()
    ch.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    log.addHandler(ch)
    return log


def port_number(value: str) -> int:
    try:
        return validate_port(int(value))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"{value} is not a TCP port") from exc


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="tcp-latency",
        description="Measure TCP round-trip latency with a single SYN (needs root).",
        epilog="'remote' is an IPv4 address or host name.",
    )
    p.add_argument("remote", nargs="?", help="Host to measure")
    p.add_argument("-i", dest="iface", help="Interface (e.g. eth0, wlan1); chosen automatically if omitted")
    p.add_argument("-p", dest="port", type=port_number, default=DEFAULT_PORT,
                   help=f"Port to test against (default {DEFAULT_PORT})")
    p.add_argument("-a", dest="auto", action="store_true",
                   help="Measure latency to several well known addresses")
    p.add_argument("--timeout", type=float, default=None,
                   help="Give up after this many seconds (default: wait forever)")
    p.add_argument("--any-source", dest="filter_remote", action="store_false",
                   help="Accept a reply from any address, not just the remote")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return p


def format_latency(seconds: float) -> str:
    return f"{seconds * 1000:.3f}ms"


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_argparser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    iface = args.iface or choose_interface()
    if not iface:
        print("Could not decide which net interface to use.")
        print("Specify it with -i <iface> param")
        return 1

    try:
        laddr = interface_address(iface)
    except LatencyError as exc:
        log.error("%s", exc)
        return 1

    if args.auto:
        for name, result in auto_test(laddr, args.port,
                                      filter_remote=args.filter_remote, timeout=args.timeout):
            shown = format_latency(result) if isinstance(result, float) else f"error: {result}"
            print(f"{name:>15}: {shown}")
        return 0

    if not args.remote:
        print("Missing remote address")
        parser.print_help()
        return 1

    print(f"Measuring round-trip latency from {laddr} to {args.remote} on port {args.port}")
    try:
        elapsed = latency(laddr, args.remote, args.port,
                          filter_remote=args.filter_remote, timeout=args.timeout)
    except LatencyError as exc:
        log.error("%s", exc)
        return 1

    print(f"Latency: {format_latency(elapsed)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
