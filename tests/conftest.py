"""
Shared fixtures: fake raw sockets and a scripted clock, so nothing here
needs root or a network.
"""

import socket
import struct
import threading

import pytest

from tcplatency.core.tcp_header import TCPFlags, TCPHeader

LOCAL = "10.0.0.1"
REMOTE = "10.0.0.2"
OTHER = "10.0.0.99"


def ip_datagram(src_ip: str, dst_ip: str, payload: bytes, ihl: int = 5) -> bytes:
    """IPv4 header (checksum left 0, kernels never check it on raw receive) + payload."""
    header = struct.pack(
        "!BBHHHBBH4s4s",
        (4 << 4) | ihl, 0, ihl * 4 + len(payload), 1, 0, 64,
        socket.IPPROTO_TCP, 0,
        socket.inet_aton(src_ip), socket.inet_aton(dst_ip),
    )
    return header + b"\x00" * (ihl * 4 - 20) + payload


def reply(src_ip: str, flags: int, dst_ip: str = LOCAL, src_port: int = 80) -> tuple:
    """One recvfrom() result: (datagram, (src_ip, 0))."""
    segment = TCPHeader(src_port=src_port, dst_port=0xAA47, flags=flags, seq=1, ack_seq=2)
    return ip_datagram(src_ip, dst_ip, segment.pack()), (src_ip, 0)


class FakeListenSocket:
    """
    Returns scripted recvfrom() results; an Exception entry is raised instead.

    Once the script runs out the socket goes quiet: recvfrom() waits out the
    last settimeout() value and raises socket.timeout, as a raw socket on an
    idle link would. A socket.timeout entry waits the same way first.
    """

    def __init__(self, datagrams, gate: threading.Event = None):
        self.datagrams = list(datagrams)
        self.gate = gate
        self.closed = False
        self.timeouts = []

    def settimeout(self, value):
        self.timeouts.append(value)

    def _wait_out_timeout(self):
        timeout = self.timeouts[-1] if self.timeouts else None
        assert timeout is not None, "recvfrom() would block forever"
        threading.Event().wait(timeout)

    def recvfrom(self, bufsize):
        if self.gate is not None:
            assert self.gate.wait(5), "probe was never sent"
        if not self.datagrams:
            self._wait_out_timeout()
            raise socket.timeout("timed out")
        item = self.datagrams.pop(0)
        if isinstance(item, socket.timeout):
            self._wait_out_timeout()
        if isinstance(item, BaseException):
            raise item
        return item

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeSendSocket:
    """Records what was sent; can be told to write short or fail."""

    def __init__(self, short_by: int = 0, error: Exception = None, on_send=None):
        self.short_by = short_by
        self.error = error
        self.on_send = on_send
        self.sent = []
        self.closed = False

    def send(self, data):
        if self.error is not None:
            raise self.error
        self.sent.append(data)
        if self.on_send is not None:
            self.on_send()
        return len(data) - self.short_by

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class ScriptedClock:
    """Hands out the given readings in order, from any thread."""

    def __init__(self, *readings):
        self.readings = list(readings)
        self.lock = threading.Lock()

    def __call__(self):
        with self.lock:
            return self.readings.pop(0)


@pytest.fixture
def listen_socket_factory():
    """Build a factory returning one FakeListenSocket; the socket is exposed as .sock."""

    def make(datagrams, gate=None):
        sock = FakeListenSocket(datagrams, gate)

        def factory(local_addr):
            factory.bound_to = local_addr
            return sock

        factory.sock = sock
        return factory

    return make


# The probe header used across the codec and checksum tests, packed by hand:
# ports 0xaa47 → 80, seq 0x01020304, ack 0, offset 5, SYN, window 0xaaaa.
PROBE_BYTES = bytes.fromhex(
    "aa47" "0050"
    "01020304"
    "00000000"
    "5002" "aaaa"
    "0000" "0000"
)


def probe_header(**overrides):
    fields = dict(src_port=0xAA47, dst_port=80, flags=TCPFlags.SYN,
                  seq=0x01020304, ack_seq=0, window=0xAAAA)
    fields.update(overrides)
    return TCPHeader(**fields)
