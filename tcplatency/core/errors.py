"""
core/errors.py — Failure Modes of a Latency Measurement
========================================================

Every failure in a single measurement is fatal for that measurement.
There are no retries and no estimated values. The classes below only
exist so callers (the CLI, the auto test) can tell the failures apart
when reporting them.
"""


class LatencyError(Exception):
    """Base class for everything that can stop a measurement."""


class AddressError(LatencyError, ValueError):
    """A string that should be a dotted-quad IPv4 address is not one."""


class MalformedSegmentError(LatencyError, ValueError):
    """Bytes that cannot be decoded as an IPv4 datagram or TCP header."""


class ResolutionError(LatencyError):
    """The remote host name did not resolve to an IPv4 address."""


class InterfaceError(LatencyError):
    """The network interface does not exist or carries no IPv4 address."""


class ProbeSocketError(LatencyError):
    """A raw socket could not be opened, bound or connected (usually: not root)."""


class TransmissionError(LatencyError):
    """The SYN could not be written, or only part of it was."""


class ReceiveError(LatencyError):
    """Reading from the listening socket failed."""


class ReplyTimeoutError(ReceiveError):
    """No RST or SYN|ACK arrived before the configured timeout."""


class ListenerStoppedError(ReceiveError):
    """The listener was told to stop before a reply arrived."""
