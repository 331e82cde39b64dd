"""Content this peer currently serves.

Each :class:`Advertisement` owns exactly one listening TCP socket; the
socket is closed when the advertisement is removed. The table has a
fixed number of slots and reuses the first free one.
"""

from __future__ import annotations

import socket
from collections.abc import Iterator
from dataclasses import dataclass

import structlog

from tagshare.errors import CapacityError, NotFoundError
from tagshare.p2p.protocol import CONTENT_NAME_LEN, fit_text

logger = structlog.get_logger()

DEFAULT_MAX_ADVERTISEMENTS = 16


@dataclass(eq=False)
class Advertisement:
    """One served content tag and the listener bound to it."""

    peer: str
    content: str
    listener: socket.socket
    ip: str
    port: int

    def close(self) -> None:
        self.listener.close()


class AdvertisementTable:
    """Fixed-slot table keyed by content tag."""

    def __init__(self, capacity: int = DEFAULT_MAX_ADVERTISEMENTS) -> None:
        self._slots: list[Advertisement | None] = [None] * capacity

    @property
    def capacity(self) -> int:
        return len(self._slots)

    def __len__(self) -> int:
        return sum(1 for slot in self._slots if slot is not None)

    def __iter__(self) -> Iterator[Advertisement]:
        return iter([slot for slot in self._slots if slot is not None])

    def __contains__(self, item: object) -> bool:
        return any(slot is item for slot in self._slots)

    @property
    def is_full(self) -> bool:
        return all(slot is not None for slot in self._slots)

    def find(self, content: str) -> Advertisement | None:
        """Return the advertisement for *content*, if any."""
        content = fit_text(content, CONTENT_NAME_LEN)
        for slot in self._slots:
            if slot is not None and slot.content == content:
                return slot
        return None

    def add(self, advertisement: Advertisement) -> int:
        """Store *advertisement* in the first free slot.

        The caller keeps ownership of the listener when this fails.

        Raises:
            CapacityError: If every slot is taken.
        """
        for i, slot in enumerate(self._slots):
            if slot is None:
                self._slots[i] = advertisement
                return i
        raise CapacityError(f"Local table full ({self.capacity} items)")

    def remove(self, content: str) -> Advertisement:
        """Free the slot for *content* and close its listener.

        Raises:
            NotFoundError: If *content* is not advertised.
        """
        content = fit_text(content, CONTENT_NAME_LEN)
        for i, slot in enumerate(self._slots):
            if slot is not None and slot.content == content:
                self._slots[i] = None
                slot.close()
                return slot
        raise NotFoundError(f"Content {content!r} is not advertised locally")
