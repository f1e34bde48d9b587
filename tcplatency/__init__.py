"""
tcplatency — TCP SYN round-trip latency probe.

Sends one hand-built TCP SYN on a raw socket and times how long the
remote host takes to answer with SYN|ACK (port open) or RST (port closed).
No handshake is ever completed.
"""

__version__ = "0.3.0"
