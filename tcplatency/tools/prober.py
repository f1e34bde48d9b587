"""
tools/prober.py — Send One SYN and Note the Time
=================================================

WHAT THIS FILE DOES:
Builds a single TCP SYN, writes it to a raw socket aimed at the target,
and returns the clock reading taken right before the write.

WHAT GOES ON THE WIRE:
  [IP header — written by the kernel][TCP header — 20 bytes, ours]

The socket is AF_INET / SOCK_RAW / IPPROTO_TCP *without* IP_HDRINCL
(unlike the port scanner's IPPROTO_RAW socket). The kernel picks the
source address and route and prepends the IP header; we supply the TCP
header and its checksum, because the kernel's TCP layer is bypassed.

NO HANDSHAKE:
The target answers SYN|ACK (open port) or RST (closed port). We never
send the final ACK. The remote end keeps a half-open entry until it
gives up, which is fine for a one-shot probe.

The local kernel, receiving a SYN|ACK for a port it never opened,
answers it with its own RST. That is also fine — by then the reply has
already been timestamped.
"""

import logging
import random
import socket
import time

from tcplatency.core.addresses import validate_ipv4
from tcplatency.core.errors import ProbeSocketError, TransmissionError
from tcplatency.core.tcp_header import TCPFlags, TCPHeader

log = logging.getLogger(__name__)

# Marker source port. Nothing listens on it; it only tags our probes
# in a packet capture.
PROBE_SRC_PORT = 0xAA47

# Advertised window of the SYN. Any non-zero value works.
PROBE_WINDOW = 0xAAAA


def open_probe_socket(remote_addr: str) -> socket.socket:
    """Raw TCP socket connected to remote_addr; the kernel adds the IP header."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_TCP)
    try:
        # Port is 0 — the destination port lives inside our TCP header.
        sock.connect((remote_addr, 0))
    except OSError:
        sock.close()
        raise
    return sock


def build_syn(local_addr: str, remote_addr: str, port: int) -> bytes:
    """
    Build the probe segment with a valid checksum.

    Fields:
      src_port = PROBE_SRC_PORT    seq    = random 32-bit ISN
      dst_port = port              ack    = 0
      flags    = SYN               window = PROBE_WINDOW
      no options (data_offset = 5)
    """
    syn = TCPHeader(
        src_port=PROBE_SRC_PORT,
        dst_port=port,
        flags=TCPFlags.SYN,
        seq=random.getrandbits(32),
        ack_seq=0,
        window=PROBE_WINDOW,
    )
    data = syn.build(local_addr, remote_addr)
    log.debug("built %r", syn)
    return data


def send_probe(local_addr: str, remote_addr: str, port: int, *,
               clock=time.perf_counter, sock_factory=open_probe_socket) -> float:
    """
    Put one SYN on the wire and return when it was handed to the kernel.

    Args:
        local_addr   : Our IPv4 address (used for the checksum only).
        remote_addr  : Target IPv4 address, already resolved.
        port         : Target TCP port.
        clock        : Zero-argument callable returning seconds.
        sock_factory : Callable(remote_addr) → connected socket.

    Returns:
        clock() read immediately before the write call.

    Raises:
        AddressError      : either address is not a dotted-quad.
        ProbeSocketError  : the raw socket cannot be created (not root?).
        TransmissionError : the write failed or was short.
    """
    validate_ipv4(local_addr)
    validate_ipv4(remote_addr)
    data = build_syn(local_addr, remote_addr, port)

    try:
        sock = sock_factory(remote_addr)
    except OSError as exc:
        raise ProbeSocketError(f"cannot open raw socket to {remote_addr}: {exc}") from exc

    with sock:
        sent_at = clock()
        try:
            num_wrote = sock.send(data)
        except OSError as exc:
            raise TransmissionError(f"write to {remote_addr} failed: {exc}") from exc

        if num_wrote != len(data):
            raise TransmissionError(f"Short write. Wrote {num_wrote}/{len(data)} bytes")

    log.debug("SYN sent to %s:%d (%d bytes)", remote_addr, port, len(data))
    return sent_at
