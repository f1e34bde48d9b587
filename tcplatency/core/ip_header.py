"""
core/ip_header.py — Reading the IPv4 Header in Front of a Reply
================================================================

On the way OUT, the kernel writes the IP header for us: the probe socket
is a raw IPPROTO_TCP socket without IP_HDRINCL, so we only hand it the
TCP bytes.

On the way IN it is different. A raw AF_INET socket returns the whole
datagram, IP header included, exactly as the port scanner sees it:

    Bytes 0-19 (or more):  IP header
    Bytes IHL*4 onwards:   TCP header

So before a reply can be decoded as TCP the IP header has to be measured
(IHL, in 32-bit words) and cut off. RFC 791: https://tools.ietf.org/html/rfc791
"""

import socket
import struct

from tcplatency.core.errors import MalformedSegmentError

IP_FORMAT = "!BBHHHBBH4s4s"
IP_MIN_LEN = struct.calcsize(IP_FORMAT)   # 20


def parse_ip_header(datagram: bytes) -> dict:
    """
    Parse the fixed part of an IPv4 header.

    Returns:
        Dictionary with version, header_length (bytes), total_length,
        ttl, protocol, checksum, src_ip and dst_ip.

    Raises:
        MalformedSegmentError: not IPv4, or shorter than its own IHL says.
    """
    if len(datagram) < IP_MIN_LEN:
        raise MalformedSegmentError(f"IP header needs {IP_MIN_LEN} bytes, got {len(datagram)}")

    (ver_ihl, tos, total_length, identification,
     flags_frag, ttl, protocol, checksum,
     src_ip_raw, dst_ip_raw) = struct.unpack(IP_FORMAT, datagram[:IP_MIN_LEN])

    version = ver_ihl >> 4
    header_length = (ver_ihl & 0x0F) * 4

    if version != 4:
        raise MalformedSegmentError(f"expected an IPv4 datagram, got version {version}")
    if header_length < IP_MIN_LEN or header_length > len(datagram):
        raise MalformedSegmentError(f"bad IP header length {header_length}")

    return {
        "version": version,
        "header_length": header_length,
        "total_length": total_length,
        "ttl": ttl,
        "protocol": protocol,
        "checksum": checksum,
        "src_ip": socket.inet_ntoa(src_ip_raw),
        "dst_ip": socket.inet_ntoa(dst_ip_raw),
    }


def strip_ip_header(datagram: bytes) -> bytes:
    """Return the payload (the TCP segment) that follows the IP header."""
    return datagram[parse_ip_header(datagram)["header_length"]:]
