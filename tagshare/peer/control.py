"""Control-channel client for the index service.

Every call is one synchronous request/reply exchange over UDP with a
fixed reply timeout and no retry. A timeout surfaces as
:class:`~tagshare.errors.ControlTimeoutError`; what to do next is up to
the caller.
"""

from __future__ import annotations

import socket
import time
from collections.abc import Iterator
from dataclasses import dataclass

import structlog

from tagshare.errors import (
    ControlTimeoutError,
    MalformedFrameError,
    NotFoundError,
    RejectedError,
    TransportError,
    UnexpectedReplyError,
)
from tagshare.p2p.protocol import (
    FRAME_SIZE,
    Frame,
    MessageType,
    decode_frame,
    encode_frame,
)

logger = structlog.get_logger()

DEFAULT_CONTROL_TIMEOUT = 2.0

_RECV_BUFSIZE = 2048


@dataclass(frozen=True)
class Provider:
    """A (peer, content) advertisement as reported by the index."""

    peer: str
    content: str
    ip: str
    port: int

    @classmethod
    def from_frame(cls, frame: Frame) -> Provider:
        return cls(peer=frame.peer, content=frame.content, ip=frame.ip, port=frame.port)


class IndexClient:
    """Talks to one index service.

    Replies are only accepted from the index address; datagrams left
    over from an earlier request that timed out are discarded before a
    new request goes out.

    Usage::

        client = IndexClient("10.0.0.1", 15000)
        client.register("alice", "doc", "10.0.0.5", 40001)
        provider = client.search("bob", "doc")
    """

    def __init__(
        self,
        host: str,
        port: int,
        *,
        timeout: float = DEFAULT_CONTROL_TIMEOUT,
    ) -> None:
        try:
            infos = socket.getaddrinfo(host, port, socket.AF_INET, socket.SOCK_DGRAM)
        except OSError as exc:
            raise TransportError(f"Bad index address {host}:{port}: {exc}") from exc
        self.address: tuple[str, int] = infos[0][4][:2]
        self.timeout = timeout
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._sock.bind(("", 0))

    def close(self) -> None:
        self._sock.close()

    def __enter__(self) -> IndexClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ── Transport ──────────────────────────────────────────────

    def _drain(self) -> None:
        """Discard datagrams already queued on the socket."""
        self._sock.setblocking(False)
        try:
            while True:
                stale, sender = self._sock.recvfrom(_RECV_BUFSIZE)
                logger.debug("stale_reply_dropped", sender=sender, length=len(stale))
        except (BlockingIOError, ConnectionError):
            pass
        finally:
            self._sock.setblocking(True)

    def _send(self, frame: Frame) -> None:
        try:
            self._sock.sendto(encode_frame(frame), self.address)
        except OSError as exc:
            raise TransportError(f"Cannot reach index {self.address}: {exc}") from exc

    def _receive(self) -> Frame:
        """Wait up to :attr:`timeout` for one frame from the index.

        Raises:
            ControlTimeoutError: If nothing arrives in time.
            MalformedFrameError: If the reply has the wrong length.
        """
        deadline = time.monotonic() + self.timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning("control_timeout", index=self.address, timeout=self.timeout)
                raise ControlTimeoutError(
                    f"No reply from index {self.address[0]}:{self.address[1]} "
                    f"within {self.timeout}s"
                )
            self._sock.settimeout(remaining)
            try:
                data, sender = self._sock.recvfrom(_RECV_BUFSIZE)
            except TimeoutError:
                continue
            except ConnectionError:
                # ICMP unreachable reported on some platforms; keep waiting
                continue
            if sender[:2] != self.address:
                logger.debug("foreign_reply_dropped", sender=sender)
                continue
            try:
                return decode_frame(data)
            except MalformedFrameError:
                logger.warning("frame_discarded", length=len(data), expected=FRAME_SIZE)
                raise

    def request(self, frame: Frame) -> Frame:
        """Send *frame* and return the single reply."""
        self._drain()
        self._send(frame)
        return self._receive()

    # ── Operations ─────────────────────────────────────────────

    def register(self, peer: str, content: str, ip: str, port: int) -> None:
        """Advertise (*peer*, *content*) at *ip*:*port*.

        Raises:
            RejectedError: If the index refused (duplicate, full, invalid).
        """
        reply = self.request(
            Frame(type=MessageType.REGISTER, peer=peer, content=content, ip=ip, port=port)
        )
        if reply.type == MessageType.ACK:
            return
        if reply.type == MessageType.ERROR:
            raise RejectedError(
                f"Index rejected registration of {content!r} by {peer!r}"
            )
        raise UnexpectedReplyError(f"Unexpected reply {reply.type!r} to register")

    def search(self, peer: str, content: str) -> Provider:
        """Ask the index for a provider of *content*.

        Raises:
            NotFoundError: If no peer advertises *content*.
        """
        reply = self.request(Frame(type=MessageType.SEARCH, peer=peer, content=content))
        if reply.type == MessageType.SEARCH:
            return Provider.from_frame(reply)
        if reply.type == MessageType.ERROR:
            raise NotFoundError(f"Content {content!r} not found on any peer")
        raise UnexpectedReplyError(f"Unexpected reply {reply.type!r} to search")

    def deregister(self, peer: str, content: str) -> None:
        """Withdraw (*peer*, *content*) from the index.

        Raises:
            NotFoundError: If the index holds no such entry.
        """
        reply = self.request(
            Frame(type=MessageType.DEREGISTER, peer=peer, content=content)
        )
        if reply.type == MessageType.ACK:
            return
        if reply.type == MessageType.ERROR:
            raise NotFoundError(f"Index has no entry {content!r} for {peer!r}")
        raise UnexpectedReplyError(f"Unexpected reply {reply.type!r} to deregister")

    def list_entries(self) -> Iterator[Provider]:
        """Yield the index catalogue row by row.

        Stops at the terminator, at the first non-list frame, or when a
        row does not arrive within the timeout.
        """
        self._drain()
        self._send(Frame(type=MessageType.LIST))
        while True:
            try:
                row = self._receive()
            except (ControlTimeoutError, MalformedFrameError):
                return
            if row.type != MessageType.LIST or row.is_terminator:
                return
            yield Provider.from_frame(row)
