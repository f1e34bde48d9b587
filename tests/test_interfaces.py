import socket
from collections import namedtuple

import pytest

from tcplatency.core.errors import InterfaceError
from tcplatency.tools import interfaces
from tcplatency.tools.interfaces import choose_interface, interface_address

Addr = namedtuple("Addr", "family address netmask broadcast ptp")


def v4(address):
    return Addr(socket.AF_INET, address, "255.255.255.0", None, None)


def v6(address):
    return Addr(socket.AF_INET6, address, None, None, None)


@pytest.fixture
def fake_ifaces(monkeypatch):
    def install(table):
        monkeypatch.setattr(interfaces.psutil, "net_if_addrs", lambda: table)
    return install


def test_choose_skips_loopback_and_ipv6_only(fake_ifaces):
    fake_ifaces({
        "lo": [v4("127.0.0.1")],
        "tun0": [v6("fe80::1")],
        "eth0": [v6("fe80::2"), v4("192.168.1.30")],
    })
    assert choose_interface() == "eth0"


def test_choose_none(fake_ifaces):
    fake_ifaces({"lo": [v4("127.0.0.1")]})
    assert choose_interface() is None


def test_interface_address(fake_ifaces):
    fake_ifaces({"wlan0": [v6("fe80::3"), v4("10.1.2.3"), v4("10.1.2.4")]})
    assert interface_address("wlan0") == "10.1.2.3"


def test_interface_address_unknown(fake_ifaces):
    fake_ifaces({})
    with pytest.raises(InterfaceError):
        interface_address("eth9")


def test_interface_address_without_ipv4(fake_ifaces):
    fake_ifaces({"tun0": [v6("fe80::1")]})
    with pytest.raises(InterfaceError):
        interface_address("tun0")
