"""Data-channel transfers between peers.

Server half (:func:`serve_download`) and client half
(:func:`fetch_content`) of the download handshake::

    client → server   D + content name (10 bytes, zero padded)
    server → client   E                     (not found, then close)
                      C + raw bytes ...     (then close)

Both halves run to completion on the caller's thread.
"""

from __future__ import annotations

import contextlib
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

import structlog

from tagshare.errors import (
    ContentUnavailableError,
    LocalStorageError,
    TransferTimeoutError,
    TransportError,
    UnexpectedReplyError,
)
from tagshare.p2p.protocol import (
    CONTENT_NAME_LEN,
    MessageType,
    encode_download_request,
    parse_content_name,
)
from tagshare.storage import ContentStorage

logger = structlog.get_logger()

DEFAULT_DATA_TIMEOUT = 5.0
DEFAULT_CHUNK_SIZE = 4096


def _recv_exact(conn: socket.socket, size: int) -> bytes:
    """Read exactly *size* bytes, or fewer if the peer closes first."""
    buf = bytearray()
    while len(buf) < size:
        chunk = conn.recv(size - len(buf))
        if not chunk:
            break
        buf += chunk
    return bytes(buf)


def _receive_into(
    conn: socket.socket, sink: BinaryIO, content: str, chunk_size: int
) -> tuple[int, bool]:
    """Copy *conn* into *sink* until the sender closes.

    A network stall or a disk write failure ends the copy early.

    Returns:
        ``(bytes_written, complete)``.
    """
    total = 0
    while True:
        try:
            chunk = conn.recv(chunk_size)
        except OSError as exc:
            logger.warning(
                "transfer_aborted",
                content=content,
                received=total,
                side="network",
                error=str(exc) or type(exc).__name__,
            )
            return total, False
        if not chunk:
            return total, True
        try:
            sink.write(chunk)
        except OSError as exc:
            logger.warning(
                "transfer_aborted",
                content=content,
                received=total,
                side="disk",
                error=str(exc),
            )
            return total, False
        total += len(chunk)


# ── Server half ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class ServedDownload:
    """Outcome of one accepted data connection."""

    content: str
    found: bool
    bytes_sent: int = 0


def serve_download(
    listener: socket.socket,
    storage: ContentStorage,
    *,
    timeout: float = DEFAULT_DATA_TIMEOUT,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> ServedDownload | None:
    """Accept one connection on *listener* and answer its download request.

    Returns:
        What was served, or ``None`` if nothing was accepted or the
        request was not a valid download request.
    """
    try:
        conn, addr = listener.accept()
    except (BlockingIOError, InterruptedError):
        return None
    except OSError as exc:
        logger.warning("accept_failed", error=str(exc))
        return None

    with conn:
        conn.settimeout(timeout)
        try:
            tag = _recv_exact(conn, 1)
            if tag != MessageType.DOWNLOAD.tag:
                logger.info("download_rejected", client=addr, tag=tag)
                return None
            raw_name = _recv_exact(conn, CONTENT_NAME_LEN)
            if len(raw_name) != CONTENT_NAME_LEN:
                logger.info("download_rejected", client=addr, reason="short name")
                return None
        except OSError as exc:
            logger.info("download_rejected", client=addr, error=str(exc))
            return None

        content = parse_content_name(raw_name)
        source = storage.open_for_serving(content)
        if source is None:
            with contextlib.suppress(OSError):
                conn.sendall(MessageType.ERROR.tag)
            logger.info("download_not_found", client=addr, content=content)
            return ServedDownload(content=content, found=False)

        sent = 0
        with source:
            try:
                conn.sendall(MessageType.CONTENT.tag)
                while True:
                    chunk = source.read(chunk_size)
                    if not chunk:
                        break
                    conn.sendall(chunk)
                    sent += len(chunk)
            except OSError as exc:
                logger.info(
                    "download_aborted", client=addr, content=content, error=str(exc)
                )
                return ServedDownload(content=content, found=True, bytes_sent=sent)

    logger.info("download_served", client=addr, content=content, bytes=sent)
    return ServedDownload(content=content, found=True, bytes_sent=sent)


# ── Client half ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class FetchResult:
    """Outcome of a download from another peer."""

    content: str
    path: Path
    size: int
    complete: bool = True

    @property
    def empty(self) -> bool:
        return self.size == 0


def fetch_content(
    ip: str,
    port: int,
    content: str,
    storage: ContentStorage,
    *,
    timeout: float = DEFAULT_DATA_TIMEOUT,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> FetchResult:
    """Download *content* from the provider at *ip*:*port* into *storage*.

    Once the content header has arrived, bytes are streamed to disk
    until the provider closes. A stall longer than *timeout* after that
    point ends the transfer early and is reported with
    ``complete=False`` rather than raised; so does a failed disk write.

    Raises:
        TransportError: If the provider cannot be reached.
        TransferTimeoutError: If the provider stalls before the header.
        ContentUnavailableError: If the provider answers Error.
        UnexpectedReplyError: If the header is neither C nor E.
        LocalStorageError: If the download file cannot be created.
    """
    try:
        conn = socket.create_connection((ip, port), timeout=timeout)
    except TimeoutError as exc:
        raise TransferTimeoutError(f"Connecting to {ip}:{port} timed out") from exc
    except OSError as exc:
        raise TransportError(f"Cannot connect to {ip}:{port}: {exc}") from exc

    with conn:
        try:
            conn.sendall(encode_download_request(content))
            header = _recv_exact(conn, 1)
        except TimeoutError as exc:
            raise TransferTimeoutError(
                f"No header from {ip}:{port} within {timeout}s"
            ) from exc
        except OSError as exc:
            raise TransportError(f"Download request to {ip}:{port} failed: {exc}") from exc

        if not header:
            raise UnexpectedReplyError(f"No header from content server {ip}:{port}")
        if header == MessageType.ERROR.tag:
            raise ContentUnavailableError(
                f"{ip}:{port} does not have {content!r}"
            )
        if header != MessageType.CONTENT.tag:
            raise UnexpectedReplyError(
                f"Unexpected header {header!r} from content server {ip}:{port}"
            )

        try:
            path, sink = storage.open_for_receiving(content)
        except (OSError, ValueError) as exc:
            logger.warning("transfer_not_saved", content=content, error=str(exc))
            raise LocalStorageError(
                f"Cannot save {content!r} under {storage.received_dir}: {exc}"
            ) from exc

        total = 0
        try:
            with sink:
                total, complete = _receive_into(conn, sink, content, chunk_size)
        except OSError as exc:
            # Buffered bytes that could not be flushed on close
            logger.warning(
                "transfer_aborted", content=content, side="disk", error=str(exc)
            )
            complete = False

    if total == 0:
        logger.warning("transfer_empty", content=content, path=str(path))
    else:
        logger.info("transfer_complete", content=content, path=str(path), bytes=total)
    return FetchResult(content=content, path=path, size=total, complete=complete)
