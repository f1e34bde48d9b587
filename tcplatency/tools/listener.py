"""
tools/listener.py — Wait for the RST or SYN|ACK
================================================

WHAT THIS FILE DOES:
Opens a raw TCP socket bound to our local address and reads every TCP
datagram the kernel delivers to it, until one looks like the answer to
our SYN. The clock is read the instant each datagram comes out of
recvfrom(), before any parsing.

WHAT COUNTS AS THE ANSWER:
    RST         → port closed, host answered
    SYN|ACK     → port open, host answered
    anything else (pure ACKs, data, FINs) → keep reading

MATCHING IS BY SOURCE AND FLAGS ONLY:
A raw IPPROTO_TCP socket sees *all* inbound TCP for this host, not just
replies to the probe. The only filters are the sender's address (when a
remote filter is given) and the flags above. Ports and sequence numbers
are not checked, so an unrelated RST from the same host arriving at the
wrong moment would be taken as the reply.
"""

import logging
import socket
import time

from tcplatency.core.addresses import validate_ipv4
from tcplatency.core.errors import (ListenerStoppedError, MalformedSegmentError,
                                    ProbeSocketError, ReceiveError,
                                    ReplyTimeoutError)
from tcplatency.core.ip_header import strip_ip_header
from tcplatency.core.tcp_header import TCPFlags, TCPHeader

log = logging.getLogger(__name__)

# Maximum IP datagram size — never truncate.
RECV_BUFFER = 65535

# Longest a single recvfrom() may block while a stop signal can arrive.
STOP_POLL = 0.1


def open_listen_socket(local_addr: str) -> socket.socket:
    """Raw TCP socket bound to local_addr. Receives IP header + TCP segment."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_TCP)
    try:
        sock.bind((local_addr, 0))
    except OSError:
        sock.close()
        raise
    return sock


def is_reply(segment: TCPHeader) -> bool:
    """RST, or SYN and ACK together."""
    return segment.has_flag(TCPFlags.RST) or segment.has_flag(TCPFlags.SYN_ACK)


def listen_for_reply(local_addr: str, remote_filter: str = None, *,
                     ready=None, stop=None, timeout: float = None,
                     clock=time.perf_counter,
                     sock_factory=open_listen_socket) -> float:
    """
    Block until a RST or SYN|ACK arrives and return when it arrived.

    Args:
        local_addr    : IPv4 address to bind the listening socket to.
        remote_filter : If set, datagrams from any other source are skipped.
        ready         : threading.Event set once the socket is bound, so the
                        caller knows it is safe to send the probe.
        stop          : threading.Event; once set, the socket is closed and
                        ListenerStoppedError raised within STOP_POLL seconds.
        timeout       : Seconds to wait for a reply in total. None = forever.
        clock         : Zero-argument callable returning seconds.
        sock_factory  : Callable(local_addr) → bound socket.

    Returns:
        clock() read right after the qualifying datagram was received.

    Raises:
        ProbeSocketError     : the socket cannot be created or bound.
        ReplyTimeoutError    : timeout set and nothing arrived in time.
        ListenerStoppedError : stop was set.
        ReceiveError         : any other read error.
    """
    validate_ipv4(local_addr)
    if remote_filter is not None:
        validate_ipv4(remote_filter)

    try:
        sock = sock_factory(local_addr)
    except OSError as exc:
        raise ProbeSocketError(f"cannot listen on {local_addr}: {exc}") from exc

    # The timeout bounds the whole wait, not each recvfrom(): unrelated
    # traffic must not keep extending it.
    deadline = None if timeout is None else time.monotonic() + timeout

    with sock:
        if ready is not None:
            ready.set()

        while True:
            if stop is not None and stop.is_set():
                raise ListenerStoppedError(f"listener on {local_addr} stopped")

            wait = None
            if deadline is not None:
                wait = deadline - time.monotonic()
                if wait <= 0:
                    raise ReplyTimeoutError(f"no reply within {timeout}s")
            if stop is not None:
                wait = STOP_POLL if wait is None else min(wait, STOP_POLL)
            sock.settimeout(wait)

            try:
                datagram, addr = sock.recvfrom(RECV_BUFFER)
            except socket.timeout:
                # the top of the loop decides between stop, timeout and retry
                continue
            except OSError as exc:
                raise ReceiveError(f"read on {local_addr} failed: {exc}") from exc
            received_at = clock()

            if remote_filter is not None and addr[0] != remote_filter:
                # not the packet we are looking for
                continue

            try:
                segment = TCPHeader.unpack(strip_ip_header(datagram))
            except MalformedSegmentError as exc:
                log.debug("skipping %d bytes from %s: %s", len(datagram), addr[0], exc)
                continue

            log.debug("from %s: %r", addr[0], segment)
            if is_reply(segment):
                return received_at
