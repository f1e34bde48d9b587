import socket

import pytest

from tcplatency.core import addresses
from tcplatency.core.addresses import (resolve_host, strip_prefix, to_4byte,
                                      validate_port)
from tcplatency.core.errors import AddressError, ResolutionError


def test_to_4byte():
    assert to_4byte("192.168.1.1") == b"\xc0\xa8\x01\x01"


@pytest.mark.parametrize("bad", ["fe80::1", "10.1", "1.2.3.4/24", "", "host.example"])
def test_to_4byte_rejects(bad):
    with pytest.raises(AddressError):
        to_4byte(bad)


def test_strip_prefix():
    assert strip_prefix("192.168.1.30/24") == "192.168.1.30"
    assert strip_prefix("192.168.1.30") == "192.168.1.30"


def test_resolve_literal():
    assert resolve_host("127.0.0.1") == "127.0.0.1"


def test_resolve_failure(monkeypatch):
    def fail(host):
        raise socket.gaierror(-2, "Name or service not known")

    monkeypatch.setattr(addresses.socket, "gethostbyname", fail)
    with pytest.raises(ResolutionError, match="nowhere.invalid"):
        resolve_host("nowhere.invalid")


@pytest.mark.parametrize("port", [1, 80, 65535])
def test_validate_port(port):
    assert validate_port(port) == port


@pytest.mark.parametrize("port", [0, -1, 65536])
def test_validate_port_rejects(port):
    with pytest.raises(ValueError):
        validate_port(port)
