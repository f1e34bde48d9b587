"""
core/addresses.py — IPv4 Address Handling
==========================================

Everything downstream (pseudo-header, socket calls) works with plain
dotted-quad strings like "192.168.1.30". This module is the boundary
where anything else is turned away:

  - "192.168.1.30/24" (an interface address with a prefix) is cleaned
  - "example.com" is resolved once, before any socket is opened
  - "::1" or "10.1" is rejected — this tool speaks IPv4 only
"""

import ipaddress
import logging
import socket

from tcplatency.core.errors import AddressError, ResolutionError

log = logging.getLogger(__name__)


def strip_prefix(addr: str) -> str:
    """Drop a CIDR suffix: "192.168.1.30/24" → "192.168.1.30"."""
    return addr.split("/", 1)[0]


def to_4byte(addr: str) -> bytes:
    """
    Convert a dotted-quad string into its 4 packed bytes.

    socket.inet_aton would accept shorthand like "10.1" (→ 10.0.0.1),
    which is never what the user meant, so ipaddress is used instead:
    it only takes the full four-part form.

    Example:
        "192.168.1.1" → b'\\xc0\\xa8\\x01\\x01'

    Raises:
        AddressError: for IPv6 literals, host names and anything malformed.
    """
    try:
        return ipaddress.IPv4Address(addr).packed
    except (ipaddress.AddressValueError, ValueError) as exc:
        raise AddressError(
            f"{addr!r} is not an IPv4 address (IPv6 and host names are not supported here)"
        ) from exc


def validate_ipv4(addr: str) -> str:
    """Return addr unchanged if it is a dotted-quad, else raise AddressError."""
    to_4byte(addr)
    return addr


def resolve_host(host: str) -> str:
    """
    Resolve a host name (or pass through an IPv4 literal) to a dotted-quad.

    gethostbyname only ever returns IPv4, which is exactly the family the
    raw sockets in this package are opened with.

    Raises:
        ResolutionError: the name does not resolve.
    """
    try:
        addr = socket.gethostbyname(host)
    except (socket.gaierror, UnicodeError) as exc:
        raise ResolutionError(f"Error resolving {host}: {exc}") from exc
    log.debug("resolved %s -> %s", host, addr)
    return addr


def validate_port(port: int) -> int:
    """
    Return port if it can be a TCP destination (1-65535), else raise ValueError.

    Port 0 is reserved; nothing answers on it.
    """
    if not 0 < port <= 0xFFFF:
        raise ValueError(f"port {port} is outside 1-65535")
    return port
