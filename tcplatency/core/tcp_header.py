"""
core/tcp_header.py — TCP Segment Encoding and Decoding
=======================================================

A latency probe only ever needs the TCP header: the SYN carries no data,
and the RST or SYN|ACK coming back is judged on its flags alone. This
module turns a TCPHeader object into wire bytes and wire bytes back into
a TCPHeader.

RFC 793 (plus RFC 3168 / 3540 for the ECN bits): https://tools.ietf.org/html/rfc793

TCP HEADER STRUCTURE (20 bytes minimum):
 0                   1                   2                   3
 0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1
+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
|          Source Port          |       Destination Port        |
+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
|                        Sequence Number                        |
+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
|                    Acknowledgment Number                      |
+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
|  Data |     |N|C|E|U|A|P|R|S|F|                               |
| Offset| Rsv |S|W|C|R|C|S|S|Y|I|            Window             |
|       |     | |R|E|G|K|H|T|N|N|                               |
+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
|           Checksum            |         Urgent Pointer        |
+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
|                    Options (0-40 bytes)                       |
+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+

THE TWO PACKED BYTES (12 and 13):
Byte 12 holds the data offset in its high nibble, 3 reserved bits, and
the NS flag in its lowest bit. Byte 13 holds the other eight flags.
Read as a single 16-bit word that is simply:

    (data_offset << 12) | (reserved << 9) | flags      # flags = 9 bits
"""

import random
import struct

from tcplatency.core.checksum import tcp_checksum
from tcplatency.core.errors import MalformedSegmentError

# Fixed part of the header, everything before the options.
# Same layout the sniffer unpacks, with the offset/flags word kept whole.
HEADER_FORMAT = "!HHIIHHHH"
HEADER_LEN = struct.calcsize(HEADER_FORMAT)   # 20

MIN_DATA_OFFSET = 5
MAX_DATA_OFFSET = 15   # 4-bit field: at most 60 header bytes, 40 of them options


class TCPFlags:
    """
    The nine TCP control bits.

    Only three matter to a latency probe:
    - SYN     : what we send ("I want to connect")
    - SYN|ACK : port open — the server is willing to continue the handshake
    - RST     : port closed — the host refuses, but it still answered

    Both answers are equally good: all we want is the moment they arrive.
    """

    FIN = 0x001  # Finish
    SYN = 0x002  # Synchronize (initiate connection)
    RST = 0x004  # Reset (abort / refuse)
    PSH = 0x008  # Push
    ACK = 0x010  # Acknowledgment
    URG = 0x020  # Urgent pointer is valid
    ECE = 0x040  # ECN-Echo
    CWR = 0x080  # Congestion Window Reduced
    NS = 0x100   # ECN-nonce concealment (lives in byte 12)

    SYN_ACK = SYN | ACK

    ALL = 0x1FF

    _NAMES = [
        (FIN, "FIN"),
        (SYN, "SYN"),
        (RST, "RST"),
        (PSH, "PSH"),
        (ACK, "ACK"),
        (URG, "URG"),
        (ECE, "ECE"),
        (CWR, "CWR"),
        (NS, "NS"),
    ]

    @staticmethod
    def to_string(flags: int) -> str:
        """Convert a flags value to a label like 'SYN|ACK'."""
        names = [name for bit, name in TCPFlags._NAMES if flags & bit]
        return "|".join(names) if names else "NONE"


class TCPHeader:
    """
    One TCP header, field by field.

    Usage:
        syn = TCPHeader(src_port=0xaa47, dst_port=80, flags=TCPFlags.SYN)
        raw = syn.build(src_ip="192.168.1.30", dst_ip="93.184.216.34")

        reply = TCPHeader.unpack(raw_reply)
        if reply.has_flag(TCPFlags.RST): ...
    """

    def __init__(
        self,
        src_port: int,
        dst_port: int,
        flags: int = TCPFlags.SYN,
        seq: int = None,
        ack_seq: int = 0,
        window: int = 65535,
        checksum: int = 0,
        urgent_ptr: int = 0,
        options: bytes = b"",
        data_offset: int = None,
        reserved: int = 0,
    ):
        """
        Args:
            src_port    : Source port (0–65535).
            dst_port    : Destination port.
            flags       : 9-bit flag mask, TCPFlags constants OR-ed together.
            seq         : Sequence number. Random 32-bit ISN when None.
            ack_seq     : Acknowledgment number, meaningful with ACK set.
            window      : Advertised receive window.
            checksum    : Value of the checksum field as it will be packed.
                          build() computes the real one.
            urgent_ptr  : Only relevant with URG set.
            options     : Raw option bytes appended after the fixed header.
            data_offset : Header length in 32-bit words. When None it is
                          derived from the options: 5 + ceil(len/4).
            reserved    : The 3 reserved bits. Always 0 on the wire today.
        """
        self.src_port = src_port
        self.dst_port = dst_port
        self.flags = flags
        self.seq = seq if seq is not None else random.randint(0, 2**32 - 1)
        self.ack_seq = ack_seq
        self.window = window
        self.checksum = checksum
        self.urgent_ptr = urgent_ptr
        self.options = bytes(options)
        self.reserved = reserved

        if data_offset is None:
            data_offset = MIN_DATA_OFFSET + (len(self.options) + 3) // 4
        if not MIN_DATA_OFFSET <= data_offset <= MAX_DATA_OFFSET:
            raise ValueError(
                f"data offset {data_offset} is outside {MIN_DATA_OFFSET}-{MAX_DATA_OFFSET} "
                f"({len(self.options)} option bytes)"
            )
        self.data_offset = data_offset

    # ─────────────────────────────────────────────────────────────
    # ENCODE
    # ─────────────────────────────────────────────────────────────

    def pack(self) -> bytes:
        """
        Serialize the header exactly as its fields are, checksum included.

        Produces 20 + len(options) bytes in network byte order. Nothing is
        computed here — see build() for the version that fills in the
        checksum.
        """
        offset_flags = ((self.data_offset & 0xF) << 12) \
            | ((self.reserved & 0x7) << 9) \
            | (self.flags & TCPFlags.ALL)

        header = struct.pack(
            HEADER_FORMAT,
            self.src_port,      # H: source port
            self.dst_port,      # H: destination port
            self.seq,           # I: sequence number
            self.ack_seq,       # I: acknowledgment number
            offset_flags,       # H: data offset + reserved + flags
            self.window,        # H: window size
            self.checksum,      # H: checksum
            self.urgent_ptr,    # H: urgent pointer
        )
        return header + self.options

    def build(self, src_ip: str, dst_ip: str) -> bytes:
        """
        Serialize with a correct checksum for the src_ip → dst_ip path.

        Two passes, same as any header with a self-covering checksum:
        pack with checksum = 0, checksum those bytes (plus pseudo-header),
        store the result and pack again.
        """
        self.checksum = 0
        self.checksum = tcp_checksum(self.pack(), src_ip, dst_ip)
        return self.pack()

    # ─────────────────────────────────────────────────────────────
    # DECODE
    # ─────────────────────────────────────────────────────────────

    @classmethod
    def unpack(cls, data: bytes) -> "TCPHeader":
        """
        Parse raw TCP bytes (no IP header in front) into a TCPHeader.

        Option bytes are whatever sits between byte 20 and data_offset * 4.
        Anything after that is payload and is ignored.

        Raises:
            MalformedSegmentError: fewer than 20 bytes, a data offset smaller
                                   than the minimum header, or one that
                                   runs past the end of data.
        """
        if len(data) < HEADER_LEN:
            raise MalformedSegmentError(
                f"TCP header needs {HEADER_LEN} bytes, got {len(data)}"
            )

        (src_port, dst_port, seq, ack_seq,
         offset_flags, window, checksum,
         urgent_ptr) = struct.unpack(HEADER_FORMAT, data[:HEADER_LEN])

        data_offset = offset_flags >> 12
        if data_offset < MIN_DATA_OFFSET:
            raise MalformedSegmentError(f"TCP data offset {data_offset} is below {MIN_DATA_OFFSET}")
        if len(data) < data_offset * 4:
            raise MalformedSegmentError(
                f"TCP data offset {data_offset} needs {data_offset * 4} bytes, got {len(data)}"
            )

        return cls(
            src_port=src_port,
            dst_port=dst_port,
            flags=offset_flags & TCPFlags.ALL,
            seq=seq,
            ack_seq=ack_seq,
            window=window,
            checksum=checksum,
            urgent_ptr=urgent_ptr,
            options=data[HEADER_LEN:data_offset * 4],
            data_offset=data_offset,
            reserved=(offset_flags >> 9) & 0x7,
        )

    def has_flag(self, flag: int) -> bool:
        """True if every bit of flag is set on this header."""
        return self.flags & flag == flag

    def _fields(self) -> tuple:
        return (self.src_port, self.dst_port, self.seq, self.ack_seq,
                self.data_offset, self.reserved, self.flags, self.window,
                self.checksum, self.urgent_ptr, self.options)

    def __eq__(self, other) -> bool:
        if not isinstance(other, TCPHeader):
            return NotImplemented
        return self._fields() == other._fields()

    def __repr__(self) -> str:
        return (
            f"TCPHeader(src_port={self.src_port}, dst_port={self.dst_port}, "
            f"flags={TCPFlags.to_string(self.flags)}, seq={self.seq:#010x}, "
            f"ack={self.ack_seq:#010x}, checksum={self.checksum:#06x})"
        )
