"""Tests for the index control-channel client."""

from __future__ import annotations

import time
from collections.abc import Generator

import pytest

from tagshare.errors import (
    ControlTimeoutError,
    NotFoundError,
    RejectedError,
    TransportError,
)
from tagshare.index.server import IndexServer
from tagshare.peer.control import DEFAULT_CONTROL_TIMEOUT, IndexClient, Provider


@pytest.fixture
def client(index_server: IndexServer) -> Generator[IndexClient, None, None]:
    host, port = index_server.address
    with IndexClient(host, port, timeout=1.0) as c:
        yield c


class TestOperations:
    def test_register_and_search(self, client: IndexClient) -> None:
        client.register("alice", "doc", "10.0.0.5", 40001)
        provider = client.search("bob", "doc")
        assert provider == Provider(peer="alice", content="doc", ip="10.0.0.5", port=40001)

    def test_duplicate_rejected(self, client: IndexClient) -> None:
        client.register("alice", "doc", "10.0.0.5", 40001)
        with pytest.raises(RejectedError) as exc_info:
            client.register("alice", "doc", "10.0.0.5", 40002)
        assert "TAGSHARE_E009" in exc_info.value.format()

    def test_search_missing(self, client: IndexClient) -> None:
        with pytest.raises(NotFoundError):
            client.search("bob", "doc")

    def test_deregister(self, client: IndexClient, index_server: IndexServer) -> None:
        client.register("alice", "doc", "10.0.0.5", 40001)
        client.deregister("alice", "doc")
        assert len(index_server.registry) == 0
        with pytest.raises(NotFoundError):
            client.deregister("alice", "doc")

    def test_list_entries(self, client: IndexClient) -> None:
        client.register("alice", "doc", "10.0.0.5", 40001)
        client.register("bob", "pic", "10.0.0.6", 40002)
        rows = list(client.list_entries())
        assert [(r.peer, r.content, r.port) for r in rows] == [
            ("alice", "doc", 40001),
            ("bob", "pic", 40002),
        ]

    def test_list_empty(self, client: IndexClient) -> None:
        assert list(client.list_entries()) == []


class TestTimeouts:
    def test_default_timeout(self) -> None:
        assert DEFAULT_CONTROL_TIMEOUT == 2.0

    def test_silent_index_times_out(self, silent_index: tuple[str, int]) -> None:
        with IndexClient(*silent_index, timeout=0.3) as client:
            start = time.monotonic()
            with pytest.raises(ControlTimeoutError):
                client.register("alice", "doc", "10.0.0.5", 40001)
            elapsed = time.monotonic() - start
        assert 0.25 <= elapsed < 1.5

    def test_default_timeout_is_about_two_seconds(
        self, silent_index: tuple[str, int]
    ) -> None:
        with IndexClient(*silent_index) as client:
            start = time.monotonic()
            with pytest.raises(ControlTimeoutError):
                client.search("alice", "doc")
            elapsed = time.monotonic() - start
        assert 1.9 <= elapsed < 3.5

    def test_timeout_is_also_timeout_error(self, silent_index: tuple[str, int]) -> None:
        with IndexClient(*silent_index, timeout=0.2) as client:
            with pytest.raises(TimeoutError):
                client.deregister("alice", "doc")

    def test_list_on_silent_index_is_empty(self, silent_index: tuple[str, int]) -> None:
        with IndexClient(*silent_index, timeout=0.2) as client:
            assert list(client.list_entries()) == []

    def test_bad_host(self) -> None:
        with pytest.raises(TransportError):
            IndexClient("no-such-host.invalid", 15000)
