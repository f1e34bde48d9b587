"""
core/checksum.py — Internet Checksum and the TCP Pseudo-Header
===============================================================

WHY WE COMPUTE THIS OURSELVES:
When the kernel's TCP layer sends a segment it fills in the checksum.
Our SYN does not go through the kernel's TCP layer — it is handed to a
raw IP socket as opaque payload. The kernel adds an IP header and nothing
else, so a zero checksum would go out on the wire and the remote host
would silently drop the segment. No reply, no latency.

THE PSEUDO-HEADER (12 bytes, never transmitted):
 0                   1                   2                   3
 0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1
+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
|                        Source Address                         |
+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
|                     Destination Address                       |
+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
|     zero      |  protocol (6) |          TCP Length           |
+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+

RFC 1071 describes the sum, RFC 793 the pseudo-header.
"""

import socket
import struct

from tcplatency.core.addresses import to_4byte

# Byte offset of the checksum field inside a TCP header.
CHECKSUM_OFFSET = 16


def internet_checksum(data: bytes) -> int:
    """
    RFC 1071 Internet Checksum.

    1. Split the data into 16-bit big-endian words.
       An odd trailing byte becomes the HIGH byte of a last word
       whose low byte is zero: b"\\x03" → 0x0300.
    2. Add the words. Fold every carry above bit 15 back into the sum
       (one's complement addition).
    3. Flip all bits and keep 16 of them.

    Verification is the same algorithm run over data that already
    contains a checksum: an intact packet sums to 0xFFFF, so this
    function returns 0 for it.
    """
    if len(data) % 2 != 0:
        data += b'\x00'

    checksum = 0
    for i in range(0, len(data), 2):
        word = (data[i] << 8) + data[i + 1]
        checksum += word

    while checksum >> 16:
        checksum = (checksum & 0xFFFF) + (checksum >> 16)

    return ~checksum & 0xFFFF


def pseudo_header(src_ip: str, dst_ip: str, length: int) -> bytes:
    """
    Build the 12-byte pseudo-header.

    Format "!4s4sBBH":
      4s = source IP
      4s = destination IP
      B  = zero
      B  = protocol (6 = TCP)
      H  = TCP segment length (header + options + data)
    """
    return struct.pack(
        "!4s4sBBH",
        to_4byte(src_ip),
        to_4byte(dst_ip),
        0,
        socket.IPPROTO_TCP,
        length,
    )


def tcp_checksum(segment: bytes, src_ip: str, dst_ip: str) -> int:
    """
    Checksum a serialized TCP segment as it will travel from src_ip to dst_ip.

    Whatever is currently in the checksum field is ignored (treated as 0),
    so the result can be computed from a segment that was packed with a
    stale or placeholder checksum.

    Args:
        segment: TCP header bytes (+ options/data), at least 18 bytes.
        src_ip:  Sender's dotted-quad IPv4 address.
        dst_ip:  Receiver's dotted-quad IPv4 address.

    Returns:
        16-bit checksum to store at bytes 16-17 of the segment.
    """
    zeroed = (segment[:CHECKSUM_OFFSET]
              + b'\x00\x00'
              + segment[CHECKSUM_OFFSET + 2:])
    return internet_checksum(pseudo_header(src_ip, dst_ip, len(segment)) + zeroed)


def verify_tcp_checksum(segment: bytes, src_ip: str, dst_ip: str) -> bool:
    """True if the checksum stored in segment is correct for this address pair."""
    return internet_checksum(pseudo_header(src_ip, dst_ip, len(segment)) + segment) == 0
