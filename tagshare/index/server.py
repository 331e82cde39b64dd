"""UDP index service.

Reads one control frame per datagram, applies it to the
:class:`~tagshare.index.registry.Registry` and answers before reading
the next datagram. Requests are never processed concurrently.

Replies:

* Register / Deregister → ``A`` on success, ``E`` otherwise.
* Search → ``S`` carrying the chosen provider, or ``E``.
* List → one ``O`` row per entry, then the ``O`` terminator.
* Anything else → ``E``.

Datagrams that are not exactly one frame long are dropped without a
reply.
"""

from __future__ import annotations

import socket
import threading

import structlog

from tagshare.errors import MalformedFrameError, TagShareError, TransportError
from tagshare.index.registry import DEFAULT_CAPACITY, Registry, RegistryEntry
from tagshare.p2p.protocol import (
    FRAME_SIZE,
    Frame,
    MessageType,
    decode_frame,
    encode_frame,
    list_terminator,
)

logger = structlog.get_logger()

# Receive buffer; larger than a frame so oversized datagrams are seen
# at their real length instead of being silently truncated to one frame.
_RECV_BUFSIZE = 2048


def _row(msg_type: MessageType, entry: RegistryEntry) -> Frame:
    return Frame(
        type=msg_type,
        peer=entry.peer,
        content=entry.content,
        ip=entry.ip,
        port=entry.port,
    )


_ERROR = Frame(type=MessageType.ERROR)
_ACK = Frame(type=MessageType.ACK)


class IndexServer:
    """Single-threaded request/reply loop around a :class:`Registry`.

    Usage::

        server = IndexServer(port=15000)
        server.bind()
        server.serve_forever()
    """

    def __init__(
        self,
        registry: Registry | None = None,
        *,
        host: str = "0.0.0.0",
        port: int = 0,
        capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        self.registry = registry if registry is not None else Registry(capacity)
        self._host = host
        self._port = port
        self._sock: socket.socket | None = None
        self._stopped = threading.Event()

    @property
    def address(self) -> tuple[str, int]:
        """The bound (host, port); port is the real one when 0 was asked."""
        if self._sock is None:
            return (self._host, self._port)
        host, port = self._sock.getsockname()[:2]
        return (host, port)

    def bind(self) -> tuple[str, int]:
        """Open and bind the UDP socket.

        Raises:
            TransportError: If the socket cannot be bound.
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((self._host, self._port))
        except OSError as exc:
            sock.close()
            raise TransportError(
                f"Cannot bind UDP {self._host}:{self._port}: {exc}"
            ) from exc
        self._sock = sock
        host, port = self.address
        logger.info("index_listening", host=host, port=port)
        return (host, port)

    # ── Request handling ───────────────────────────────────────

    def handle(self, frame: Frame) -> list[Frame]:
        """Apply one request to the registry and return the reply frames."""
        msg_type = frame.message_type()

        if msg_type is MessageType.REGISTER:
            try:
                self.registry.register(frame.peer, frame.content, frame.ip, frame.port)
            except TagShareError as exc:
                logger.info("registration_rejected", code=exc.code, reason=str(exc))
                return [_ERROR]
            return [_ACK]

        if msg_type is MessageType.SEARCH:
            if not frame.content:
                return [_ERROR]
            try:
                entry = self.registry.search(frame.content)
            except TagShareError:
                return [_ERROR]
            return [_row(MessageType.SEARCH, entry)]

        if msg_type is MessageType.DEREGISTER:
            try:
                self.registry.deregister(frame.peer, frame.content)
            except TagShareError:
                return [_ERROR]
            return [_ACK]

        if msg_type is MessageType.LIST:
            rows = [_row(MessageType.LIST, e) for e in self.registry.enumerate()]
            rows.append(list_terminator())
            logger.debug("catalogue_sent", rows=len(rows) - 1)
            return rows

        logger.info("unknown_frame_type", type=frame.type)
        return [_ERROR]

    def handle_datagram(self, data: bytes) -> list[bytes]:
        """Decode *data*, handle it, and encode the replies.

        Malformed datagrams produce no reply.
        """
        try:
            frame = decode_frame(data)
        except MalformedFrameError:
            logger.warning("frame_discarded", length=len(data), expected=FRAME_SIZE)
            return []
        return [encode_frame(reply) for reply in self.handle(frame)]

    # ── Receive loop ───────────────────────────────────────────

    def serve_once(self, timeout: float | None = None) -> bool:
        """Receive and answer one datagram.

        Returns:
            ``False`` if *timeout* expired with nothing received.
        """
        if self._sock is None:
            self.bind()
        assert self._sock is not None
        self._sock.settimeout(timeout)
        try:
            data, client = self._sock.recvfrom(_RECV_BUFSIZE)
        except TimeoutError:
            return False
        except OSError as exc:
            if self._stopped.is_set():
                return False
            logger.warning("recv_failed", error=str(exc))
            return True

        for reply in self.handle_datagram(data):
            try:
                self._sock.sendto(reply, client)
            except OSError as exc:
                logger.warning("reply_failed", client=client, error=str(exc))
                break
        return True

    def serve_forever(self, poll_interval: float = 0.5) -> None:
        """Answer requests until :meth:`shutdown` is called."""
        self._stopped.clear()
        while not self._stopped.is_set():
            self.serve_once(timeout=poll_interval)

    def shutdown(self) -> None:
        """Ask :meth:`serve_forever` to return after the current request."""
        self._stopped.set()

    def close(self) -> None:
        """Close the socket and forget every registration."""
        self._stopped.set()
        if self._sock is not None:
            self._sock.close()
            self._sock = None
        self.registry.clear()
        logger.info("index_stopped")
