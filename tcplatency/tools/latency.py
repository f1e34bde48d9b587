"""
tools/latency.py — Measure One Round Trip
==========================================

WHAT THIS FILE DOES:
Ties the listener and the prober together into one measurement:

    Idle
      │  start listener thread, wait until its socket is bound
      ▼
    Listening + Sending
      │  send SYN (t0) ... listener sees RST or SYN|ACK (t1)
      ▼
    Done → latency = t1 - t0

ORDER MATTERS:
The listener must be bound before the SYN leaves, or a fast reply
(LAN, localhost) could arrive before anyone is reading and be lost.
Instead of sleeping and hoping, the listener sets a threading.Event
once bind() has returned; only then is the probe sent.

The receive time travels back from the listener thread in a
concurrent.futures.Future — set_result() on one side, result() on the
other. An exception in the listener travels the same way and is
re-raised in the caller.

A FAILED SEND:
If the SYN cannot be sent, the listener is told to stop through a second
threading.Event. It notices within listener.STOP_POLL seconds, closes
its socket and exits; the caller joins it and then re-raises the
sender's error.

NO TIMEOUT BY DEFAULT:
A host that never answers (firewall drops the SYN) leaves the listener
reading forever. Pass ProbeConfig(timeout=...) to bound the wait.
"""

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple, Union

from tcplatency.core.addresses import resolve_host, validate_ipv4, validate_port
from tcplatency.core.errors import LatencyError, ReceiveError
from tcplatency.tools.listener import listen_for_reply
from tcplatency.tools.prober import send_probe

log = logging.getLogger(__name__)

DEFAULT_PORT = 80

# How often the caller re-checks a listener that has not signalled ready,
# in case it died while opening its socket.
READY_POLL = 0.05

DEFAULT_HOSTS = {
    # Busiest sites on the Internet
    "Google": "google.com",
    "Facebook": "facebook.com",
    "Baidu": "baidu.com",

    # Various locations
    "West Coast, USA": "speedtest.fremont.linode.com",
    "East Coast, USA": "speedtest.newark.linode.com",
    "London, UK": "speedtest.london.linode.com",
    "Tokyo, JP": "speedtest.tokyo.linode.com",

    # Other continents
    "New Zealand": "nzdsl.co.nz",
    "South Africa": "speedtest.mybroadband.co.za",
}


@dataclass(frozen=True)
class ProbeConfig:
    """Everything one measurement needs. Addresses are resolved dotted-quads."""

    local_addr: str
    remote_addr: str
    port: int = DEFAULT_PORT
    filter_remote: bool = True
    timeout: Optional[float] = None

    def __post_init__(self):
        validate_ipv4(self.local_addr)
        validate_ipv4(self.remote_addr)
        validate_port(self.port)

    @property
    def remote_filter(self) -> Optional[str]:
        return self.remote_addr if self.filter_remote else None


@dataclass(frozen=True)
class ProbeRecord:
    """A sent probe: where it went and when. Lives for one measurement."""

    local_addr: str
    remote_addr: str
    port: int
    sent_at: float

    def elapsed(self, received_at: float) -> float:
        return received_at - self.sent_at


def _start_listener(config: ProbeConfig, ready: threading.Event,
                    stop: threading.Event, listener,
                    clock) -> Tuple[Future, threading.Thread]:
    """Run the listener in a daemon thread; its outcome lands in the Future."""
    future = Future()

    def run():
        future.set_running_or_notify_cancel()
        try:
            received_at = listener(
                config.local_addr,
                config.remote_filter,
                ready=ready,
                stop=stop,
                timeout=config.timeout,
                clock=clock,
            )
        except Exception as exc:
            future.set_exception(exc)
        else:
            future.set_result(received_at)

    # Daemon: a listener still waiting on a silent host must not keep
    # the interpreter alive after the caller has given up.
    thread = threading.Thread(target=run, name=f"listener-{config.remote_addr}", daemon=True)
    thread.start()
    return future, thread


def _wait_until_ready(ready: threading.Event, future: Future) -> None:
    while not ready.wait(READY_POLL):
        if future.done():
            # Raises the listener's own error if it has one.
            future.result()
            raise ReceiveError("listener stopped before its socket was ready")


def measure_latency(config: ProbeConfig, *, sender=send_probe,
                    listener=listen_for_reply, clock=time.perf_counter) -> float:
    """
    Measure the SYN → RST/SYN|ACK round trip described by config.

    Args:
        config   : Addresses, port, filter and optional timeout.
        sender   : send_probe-compatible callable (injectable for tests).
        listener : listen_for_reply-compatible callable.
        clock    : Clock shared by both sides, in seconds.

    Returns:
        Seconds between the send and the qualifying receive, unadjusted.

    Raises:
        LatencyError subclasses from either side, unchanged.
    """
    ready = threading.Event()
    stop = threading.Event()
    future, thread = _start_listener(config, ready, stop, listener, clock)
    _wait_until_ready(ready, future)

    try:
        sent_at = sender(config.local_addr, config.remote_addr, config.port, clock=clock)
    except Exception:
        # Nothing will answer a SYN that never left: shut the listener down
        # so its socket is closed before the error reaches the caller.
        stop.set()
        thread.join()
        raise
    record = ProbeRecord(config.local_addr, config.remote_addr, config.port, sent_at)

    received_at = future.result()
    elapsed = record.elapsed(received_at)
    log.debug("%s:%d answered after %.6fs", record.remote_addr, record.port, elapsed)
    return elapsed


def latency(local_addr: str, remote_host: str, port: int = DEFAULT_PORT, *,
            filter_remote: bool = True, timeout: Optional[float] = None,
            **kwargs) -> float:
    """Resolve remote_host, then measure_latency() to it. kwargs go through."""
    remote_addr = resolve_host(remote_host)
    config = ProbeConfig(local_addr, remote_addr, port,
                         filter_remote=filter_remote, timeout=timeout)
    return measure_latency(config, **kwargs)


def auto_test(local_addr: str, port: int = DEFAULT_PORT,
              hosts: Dict[str, str] = None, *,
              measure=latency, **kwargs) -> Iterator[Tuple[str, Union[float, LatencyError]]]:
    """
    Measure each well-known host in turn.

    Yields (name, seconds) or, if that host failed, (name, error). One
    host failing never stops the others.
    """
    if hosts is None:
        hosts = DEFAULT_HOSTS

    for name, host in hosts.items():
        try:
            yield name, measure(local_addr, host, port, **kwargs)
        except LatencyError as exc:
            log.warning("%s (%s): %s", name, host, exc)
            yield name, exc
