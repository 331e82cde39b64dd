"""Socket helpers shared by the peer runtime.

- :func:`open_listener` — TCP listener on an OS-assigned port.
- :func:`detect_local_ip` — the address other hosts can reach us at.
"""

from __future__ import annotations

import socket

import structlog

from tagshare.errors import TransportError

logger = structlog.get_logger()

FALLBACK_IP = "127.0.0.1"

# Any routable address works; connecting a UDP socket sends nothing.
_ROUTE_PROBE = ("8.8.8.8", 9)


def open_listener(host: str = "0.0.0.0", backlog: int = 5) -> tuple[socket.socket, int]:
    """Open a non-blocking TCP listener on an ephemeral port.

    Returns:
        ``(socket, port)`` with the port the OS picked.

    Raises:
        TransportError: If the socket cannot be bound or put in listen mode.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind((host, 0))
        sock.listen(backlog)
        port = sock.getsockname()[1]
    except OSError as exc:
        sock.close()
        raise TransportError(f"Cannot open TCP listener: {exc}") from exc
    sock.setblocking(False)
    logger.debug("listener_opened", port=port)
    return sock, port


def detect_local_ip() -> str:
    """Return the local address of the interface used for outbound traffic.

    Falls back to ``127.0.0.1`` when there is no route.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as probe:
            probe.connect(_ROUTE_PROBE)
            return str(probe.getsockname()[0])
    except OSError as exc:
        logger.debug("local_ip_fallback", error=str(exc))
        return FALLBACK_IP
