"""Shared test fixtures."""

from __future__ import annotations

import logging
import socket
import threading
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
import structlog

from tagshare.index.registry import Registry
from tagshare.index.server import IndexServer
from tagshare.peer.control import IndexClient
from tagshare.peer.runtime import PeerRuntime
from tagshare.storage import ContentStorage


@pytest.fixture(autouse=True)
def _reset_logging() -> Generator[None, None, None]:
    """Undo CLI logging setup so later tests do not log to a closed stream."""
    yield
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()


@pytest.fixture
def registry() -> Registry:
    return Registry(capacity=8)


@pytest.fixture
def index_server() -> Generator[IndexServer, None, None]:
    """A live index on a loopback UDP port, served from a thread."""
    server = IndexServer(host="127.0.0.1", port=0)
    server.bind()
    thread = threading.Thread(
        target=server.serve_forever, kwargs={"poll_interval": 0.05}, daemon=True
    )
    thread.start()
    yield server
    server.shutdown()
    thread.join(timeout=2)
    server.close()


@pytest.fixture
def silent_index() -> Generator[tuple[str, int], None, None]:
    """A bound UDP port that never answers."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    yield sock.getsockname()[:2]
    sock.close()


@pytest.fixture
def storage(tmp_path: Path) -> ContentStorage:
    shared = tmp_path / "shared"
    shared.mkdir()
    return ContentStorage(shared_dir=shared, received_dir=tmp_path / "received")


@pytest.fixture
def make_runtime(
    tmp_path: Path,
) -> Generator[Callable[..., PeerRuntime], None, None]:
    """Factory for peers with their own storage directories.

    Every runtime created is closed at teardown.
    """
    created: list[PeerRuntime] = []

    def factory(
        peer_id: str,
        address: tuple[str, int],
        *,
        control_timeout: float = 1.0,
        **kwargs: object,
    ) -> PeerRuntime:
        root = tmp_path / peer_id
        (root / "shared").mkdir(parents=True, exist_ok=True)
        storage = ContentStorage(
            shared_dir=root / "shared", received_dir=root / "received"
        )
        client = IndexClient(address[0], address[1], timeout=control_timeout)
        runtime = PeerRuntime(
            peer_id,
            client,
            storage,
            advertise_ip="127.0.0.1",
            data_timeout=2.0,
            **kwargs,  # type: ignore[arg-type]
        )
        created.append(runtime)
        return runtime

    yield factory
    for runtime in created:
        runtime.close()
