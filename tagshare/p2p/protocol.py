"""Wire protocol definitions.

Two transports share the tag alphabet defined here:

Control channel (UDP, peer ↔ index)
  Every message is one fixed-size frame, identical in layout for every
  type. Fields a message type does not use are zero-filled::

      type(1) | peer(10) | content(10) | ip(16) | port(2, big-endian)

Data channel (TCP, peer ↔ peer)
  The downloader writes ``D`` followed by the 10-byte content name; the
  server answers ``E`` and closes, or ``C`` followed by the raw bytes of
  the resource and then closes.

A list reply is a stream of ``O`` frames ended by one ``O`` frame whose
peer field is all zero bytes (the terminator).
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum

from tagshare.errors import MalformedFrameError

# ─── Field widths ──────────────────────────────────────────

PEER_NAME_LEN = 10
CONTENT_NAME_LEN = 10
IP_FIELD_LEN = 16
IP_MAX_CHARS = IP_FIELD_LEN - 1  # room for the terminator

_FRAME = struct.Struct(f"!B{PEER_NAME_LEN}s{CONTENT_NAME_LEN}s{IP_FIELD_LEN}sH")

FRAME_SIZE = _FRAME.size  # 39

# ─── Message Types ─────────────────────────────────────────


class MessageType(IntEnum):
    """One-byte type tags (ASCII letters on the wire)."""

    # Control channel
    REGISTER = ord("R")
    SEARCH = ord("S")  # request and reply share the tag
    DEREGISTER = ord("T")
    LIST = ord("O")  # request and row reply share the tag
    ACK = ord("A")
    ERROR = ord("E")

    # Data channel only
    DOWNLOAD = ord("D")
    CONTENT = ord("C")

    @property
    def tag(self) -> bytes:
        """The single wire byte for this type."""
        return bytes([self.value])


# ─── Control frame ────────────────────────────────────────


@dataclass(frozen=True)
class Frame:
    """One control-channel message.

    ``type`` is kept as a plain ``int`` after decoding so that frames
    carrying an unknown tag can still be answered with an Error reply;
    use :meth:`message_type` to get the enum member.
    """

    type: int
    peer: str = ""
    content: str = ""
    ip: str = ""
    port: int = 0

    def message_type(self) -> MessageType | None:
        try:
            return MessageType(self.type)
        except ValueError:
            return None

    @property
    def is_terminator(self) -> bool:
        """True for the end-of-list marker (list row with empty peer)."""
        return self.type == MessageType.LIST and not self.peer


def pad_field(value: str, width: int, limit: int | None = None) -> bytes:
    """Encode *value* into exactly *width* bytes.

    At most *limit* bytes (default *width*) are copied; the remainder is
    zero-filled. Copying stops early at an embedded NUL, matching how
    receivers read the field.
    """
    raw = value.encode("utf-8", errors="surrogateescape").split(b"\x00", 1)[0]
    raw = raw[: width if limit is None else limit]
    return raw.ljust(width, b"\x00")


def read_field(raw: bytes) -> str:
    """Decode a fixed-width text field; the first zero byte ends it."""
    return raw.split(b"\x00", 1)[0].decode("utf-8", errors="surrogateescape")


def fit_text(value: str, width: int) -> str:
    """Return *value* as it would read back after a trip through the wire."""
    return read_field(pad_field(value, width))


def encode_frame(frame: Frame) -> bytes:
    """Pack *frame* into its fixed :data:`FRAME_SIZE`-byte wire form.

    Raises:
        ValueError: If the type or port does not fit its field.
    """
    if not 0 <= frame.type <= 0xFF:
        raise ValueError(f"Type tag out of range: {frame.type}")
    if not 0 <= frame.port <= 0xFFFF:
        raise ValueError(f"Port out of range: {frame.port}")
    return _FRAME.pack(
        frame.type,
        pad_field(frame.peer, PEER_NAME_LEN),
        pad_field(frame.content, CONTENT_NAME_LEN),
        pad_field(frame.ip, IP_FIELD_LEN, IP_MAX_CHARS),
        frame.port,
    )


def decode_frame(data: bytes) -> Frame:
    """Unpack one control frame.

    Raises:
        MalformedFrameError: If *data* is not exactly :data:`FRAME_SIZE`
            bytes long. Such frames are never partially parsed.
    """
    if len(data) != FRAME_SIZE:
        raise MalformedFrameError(
            f"Frame of {len(data)} bytes (expected {FRAME_SIZE})"
        )
    msg_type, peer, content, ip, port = _FRAME.unpack(data)
    return Frame(
        type=msg_type,
        peer=read_field(peer),
        content=read_field(content),
        ip=read_field(ip),
        port=port,
    )


def list_terminator() -> Frame:
    """The frame that ends a list reply."""
    return Frame(type=MessageType.LIST)


# ─── Data channel helpers ─────────────────────────────────


DOWNLOAD_REQUEST_SIZE = 1 + CONTENT_NAME_LEN


def encode_download_request(content: str) -> bytes:
    """``D`` followed by the zero-padded content name."""
    return MessageType.DOWNLOAD.tag + pad_field(content, CONTENT_NAME_LEN)


def parse_content_name(raw: bytes) -> str:
    """Extract the logical name from a fixed-width content-name field.

    The name ends at the first zero *or space* byte.
    """
    end = len(raw)
    for i, byte in enumerate(raw):
        if byte in (0x00, 0x20):
            end = i
            break
    return raw[:end].decode("utf-8", errors="surrogateescape")
