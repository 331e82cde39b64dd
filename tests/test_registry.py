"""Tests for the index registry — slot table and provider selection."""

from __future__ import annotations

import pytest

from tagshare.errors import (
    CapacityError,
    DuplicateEntryError,
    InvalidEntryError,
    NotFoundError,
)
from tagshare.index.registry import DEFAULT_CAPACITY, Registry


class TestRegister:
    def test_register_and_count(self, registry: Registry) -> None:
        entry = registry.register("alice", "doc", "10.0.0.5", 40001)
        assert entry.use_count == 0
        assert len(registry) == 1
        assert registry.slot_of("alice", "doc") == 0

    def test_default_capacity(self) -> None:
        assert Registry().capacity == DEFAULT_CAPACITY == 512

    @pytest.mark.parametrize(
        ("peer", "content", "ip", "port"),
        [
            ("", "doc", "10.0.0.5", 1),
            ("alice", "", "10.0.0.5", 1),
            ("alice", "doc", "", 1),
            ("alice", "doc", "10.0.0.5", 0),
        ],
    )
    def test_incomplete_rejected(
        self, registry: Registry, peer: str, content: str, ip: str, port: int
    ) -> None:
        with pytest.raises(InvalidEntryError):
            registry.register(peer, content, ip, port)
        assert len(registry) == 0

    def test_duplicate_rejected(self, registry: Registry) -> None:
        registry.register("alice", "doc", "10.0.0.5", 40001)
        with pytest.raises(DuplicateEntryError):
            registry.register("alice", "doc", "10.0.0.9", 40002)
        assert len(registry) == 1

    def test_same_content_other_peer_allowed(self, registry: Registry) -> None:
        registry.register("alice", "doc", "10.0.0.5", 40001)
        registry.register("bob", "doc", "10.0.0.6", 40002)
        assert len(registry) == 2

    def test_duplicate_detected_after_truncation(self, registry: Registry) -> None:
        registry.register("abcdefghijXX", "doc", "10.0.0.5", 1)
        with pytest.raises(DuplicateEntryError):
            registry.register("abcdefghijYY", "doc", "10.0.0.5", 2)

    def test_full_table(self) -> None:
        registry = Registry(capacity=2)
        registry.register("a", "x", "1.1.1.1", 1)
        registry.register("b", "x", "1.1.1.1", 2)
        with pytest.raises(CapacityError):
            registry.register("c", "x", "1.1.1.1", 3)

    def test_first_free_slot_reused(self, registry: Registry) -> None:
        registry.register("a", "x", "1.1.1.1", 1)
        registry.register("b", "x", "1.1.1.1", 2)
        registry.register("c", "x", "1.1.1.1", 3)
        registry.deregister("a", "x")
        registry.register("d", "x", "1.1.1.1", 4)
        assert registry.slot_of("d", "x") == 0
        assert [e.peer for e in registry.enumerate()] == ["d", "b", "c"]


class TestSearch:
    def test_not_found(self, registry: Registry) -> None:
        with pytest.raises(NotFoundError):
            registry.search("doc")

    def test_increments_use_count(self, registry: Registry) -> None:
        registry.register("alice", "doc", "10.0.0.5", 40001)
        assert registry.search("doc").use_count == 1
        assert registry.search("doc").use_count == 2

    def test_least_used_wins(self, registry: Registry) -> None:
        registry.register("alice", "doc", "10.0.0.5", 1)
        registry.register("bob", "doc", "10.0.0.6", 2)
        picks = [registry.search("doc").peer for _ in range(4)]
        assert picks == ["alice", "bob", "alice", "bob"]

    def test_tie_goes_to_lowest_slot(self, registry: Registry) -> None:
        registry.register("alice", "doc", "10.0.0.5", 1)
        registry.register("bob", "doc", "10.0.0.6", 2)
        registry.deregister("alice", "doc")
        registry.register("carol", "doc", "10.0.0.7", 3)  # takes slot 0
        assert registry.search("doc").peer == "carol"

    def test_only_matching_content_considered(self, registry: Registry) -> None:
        registry.register("alice", "other", "10.0.0.5", 1)
        registry.register("bob", "doc", "10.0.0.6", 2)
        assert registry.search("doc").peer == "bob"
        entries = {e.content: e.use_count for e in registry.enumerate()}
        assert entries == {"other": 0, "doc": 1}


class TestDeregister:
    def test_removes_exact_match(self, registry: Registry) -> None:
        registry.register("alice", "doc", "10.0.0.5", 1)
        registry.register("bob", "doc", "10.0.0.6", 2)
        removed = registry.deregister("alice", "doc")
        assert removed.peer == "alice"
        assert [e.peer for e in registry.enumerate()] == ["bob"]

    def test_missing_changes_nothing(self, registry: Registry) -> None:
        registry.register("alice", "doc", "10.0.0.5", 1)
        with pytest.raises(NotFoundError):
            registry.deregister("bob", "doc")
        assert len(registry) == 1

    def test_clear(self, registry: Registry) -> None:
        registry.register("alice", "doc", "10.0.0.5", 1)
        registry.clear()
        assert len(registry) == 0
        assert list(registry.enumerate()) == []


class TestEnumerate:
    def test_slot_order(self, registry: Registry) -> None:
        for peer in ("a", "b", "c"):
            registry.register(peer, "x", "1.1.1.1", 1)
        assert [e.peer for e in registry.enumerate()] == ["a", "b", "c"]

    def test_fresh_scan_each_call(self, registry: Registry) -> None:
        registry.register("a", "x", "1.1.1.1", 1)
        first = registry.enumerate()
        second = registry.enumerate()
        assert next(first).peer == "a"
        assert next(second).peer == "a"
