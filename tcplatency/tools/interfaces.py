"""
tools/interfaces.py — Picking the Local Address

The probe's checksum covers our own IPv4 address, and the listener binds
to it, so we need the address the SYN will actually leave from. Given an
interface name (eth0, wlan0, ...) we take its first IPv4 address; with no
name we pick the first non-loopback interface that has one.

Run 'ip addr' to see what is available.
"""

import ipaddress
import logging
import socket
from typing import Optional

import psutil

from tcplatency.core.addresses import strip_prefix
from tcplatency.core.errors import InterfaceError

log = logging.getLogger(__name__)


def _ipv4_addresses(addrs) -> list:
    return [strip_prefix(a.address) for a in addrs if a.family == socket.AF_INET]


def choose_interface() -> Optional[str]:
    """First interface, loopback skipped, with an IPv4 address; None if there is none."""
    for name, addrs in psutil.net_if_addrs().items():
        ipv4 = _ipv4_addresses(addrs)
        if name == "lo" or not ipv4:
            continue
        if all(ipaddress.IPv4Address(a).is_loopback for a in ipv4):
            continue
        log.debug("chose interface %s", name)
        return name
    return None


def interface_address(name: str) -> str:
    """
    First IPv4 address of interface name, without any /prefix.

    Raises:
        InterfaceError: no such interface, or it has no IPv4 address.
    """
    addrs = psutil.net_if_addrs().get(name)
    if addrs is None:
        raise InterfaceError(f"no interface named {name!r}")

    ipv4 = _ipv4_addresses(addrs)
    if not ipv4:
        raise InterfaceError(f"interface {name} has no IPv4 address")
    return ipv4[0]
