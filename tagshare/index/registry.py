"""Fixed-capacity registry of advertised content.

The index keeps one slot per (peer, content) advertisement in a flat
table of :data:`DEFAULT_CAPACITY` slots:

* **register** stores an entry in the *first free* slot (lowest index),
  which is not necessarily the most recently freed one.
* **search** picks, among entries for a tag, the one with the lowest
  ``use_count``; ties go to the lowest slot. The winner's count is
  bumped, so repeated searches for a popular tag spread across its
  providers.
* **deregister** frees the slot of an exact (peer, content) match.
* **enumerate** yields in-use entries in slot order.

All operations are linear scans. The table is small and owned by a
single-threaded service, so there is no locking.

Usage::

    registry = Registry()
    registry.register("alice", "doc", "10.0.0.5", 40001)
    entry = registry.search("doc")
    registry.deregister("alice", "doc")
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

import structlog

from tagshare.errors import (
    CapacityError,
    DuplicateEntryError,
    InvalidEntryError,
    NotFoundError,
)
from tagshare.p2p.protocol import (
    CONTENT_NAME_LEN,
    IP_FIELD_LEN,
    IP_MAX_CHARS,
    PEER_NAME_LEN,
    fit_text,
    pad_field,
    read_field,
)

logger = structlog.get_logger()

DEFAULT_CAPACITY = 512


@dataclass
class RegistryEntry:
    """One advertised (peer, content) pair and where to fetch it."""

    peer: str
    content: str
    ip: str
    port: int
    use_count: int = 0

    @property
    def key(self) -> tuple[str, str]:
        return (self.peer, self.content)


def _ip_text(ip: str) -> str:
    return read_field(pad_field(ip, IP_FIELD_LEN, IP_MAX_CHARS))


class Registry:
    """Slot table of :class:`RegistryEntry` objects.

    A slot holding ``None`` is free. Text fields are compared the way
    they travel on the wire: peer ids and content tags over their first
    10 bytes, addresses over 15 characters.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"Capacity must be positive: {capacity}")
        self._slots: list[RegistryEntry | None] = [None] * capacity

    @property
    def capacity(self) -> int:
        return len(self._slots)

    def __len__(self) -> int:
        return sum(1 for slot in self._slots if slot is not None)

    def slot_of(self, peer: str, content: str) -> int | None:
        """Return the slot index holding (*peer*, *content*), if any."""
        key = (fit_text(peer, PEER_NAME_LEN), fit_text(content, CONTENT_NAME_LEN))
        for i, entry in enumerate(self._slots):
            if entry is not None and entry.key == key:
                return i
        return None

    # ── Write operations ───────────────────────────────────────

    def register(self, peer: str, content: str, ip: str, port: int) -> RegistryEntry:
        """Add a new advertisement.

        Raises:
            InvalidEntryError: If any field is empty or *port* is 0.
            DuplicateEntryError: If (*peer*, *content*) is already present.
            CapacityError: If every slot is taken.
        """
        peer = fit_text(peer, PEER_NAME_LEN)
        content = fit_text(content, CONTENT_NAME_LEN)
        ip = _ip_text(ip)

        if not peer or not content or not ip or port == 0:
            raise InvalidEntryError(
                f"Incomplete registration peer={peer!r} content={content!r} "
                f"ip={ip!r} port={port}"
            )
        if self.slot_of(peer, content) is not None:
            raise DuplicateEntryError(
                f"Peer {peer!r} already registered content {content!r}"
            )

        for i, slot in enumerate(self._slots):
            if slot is None:
                entry = RegistryEntry(peer=peer, content=content, ip=ip, port=port)
                self._slots[i] = entry
                logger.info(
                    "entry_registered",
                    slot=i,
                    peer=peer,
                    content=content,
                    addr=f"{ip}:{port}",
                )
                return entry

        raise CapacityError(f"Registry full ({self.capacity} entries)")

    def deregister(self, peer: str, content: str) -> RegistryEntry:
        """Remove the exact (*peer*, *content*) entry.

        Raises:
            NotFoundError: If no such entry exists. Nothing changes.
        """
        slot = self.slot_of(peer, content)
        if slot is None:
            raise NotFoundError(f"No entry for peer {peer!r} content {content!r}")
        entry = self._slots[slot]
        self._slots[slot] = None
        logger.info("entry_deregistered", slot=slot, peer=peer, content=content)
        return entry  # type: ignore[return-value]

    def clear(self) -> None:
        """Drop every entry (index shutdown)."""
        self._slots = [None] * self.capacity

    # ── Read operations ────────────────────────────────────────

    def search(self, content: str) -> RegistryEntry:
        """Select the least-used provider of *content* and count the use.

        Ties on ``use_count`` go to the entry in the lowest slot.

        Raises:
            NotFoundError: If no entry carries *content*.
        """
        content = fit_text(content, CONTENT_NAME_LEN)
        best: RegistryEntry | None = None
        for entry in self._slots:
            if entry is None or entry.content != content:
                continue
            if best is None or entry.use_count < best.use_count:
                best = entry

        if best is None:
            raise NotFoundError(f"No provider for content {content!r}")

        best.use_count += 1
        logger.debug(
            "provider_selected",
            content=content,
            peer=best.peer,
            use_count=best.use_count,
        )
        return best

    def enumerate(self) -> Iterator[RegistryEntry]:
        """Yield every in-use entry in slot order.

        Each call starts a fresh scan.
        """
        for entry in self._slots:
            if entry is not None:
                yield entry
