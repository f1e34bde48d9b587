import pytest

from tcplatency.core.errors import MalformedSegmentError
from tcplatency.core.ip_header import parse_ip_header, strip_ip_header

from conftest import ip_datagram


def test_parse_fields():
    info = parse_ip_header(ip_datagram("10.0.0.2", "10.0.0.1", b"x" * 20))
    assert info["version"] == 4
    assert info["header_length"] == 20
    assert info["total_length"] == 40
    assert info["protocol"] == 6
    assert info["src_ip"] == "10.0.0.2"
    assert info["dst_ip"] == "10.0.0.1"


def test_strip_honours_ip_options():
    payload = b"tcp-bytes-here"
    assert strip_ip_header(ip_datagram("10.0.0.2", "10.0.0.1", payload, ihl=6)) == payload


def test_short_datagram():
    with pytest.raises(MalformedSegmentError):
        parse_ip_header(b"\x45" * 10)


def test_not_ipv4():
    data = bytearray(ip_datagram("10.0.0.2", "10.0.0.1", b""))
    data[0] = 0x65
    with pytest.raises(MalformedSegmentError):
        parse_ip_header(bytes(data))


def test_ihl_longer_than_datagram():
    data = bytearray(ip_datagram("10.0.0.2", "10.0.0.1", b""))
    data[0] = 0x4F
    with pytest.raises(MalformedSegmentError):
        parse_ip_header(bytes(data))
