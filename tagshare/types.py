"""Shared Protocol types for tagshare.

Structural interfaces the core depends on instead of concrete
implementations, so tests can drive the runtime without a terminal.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from tagshare.peer.runtime import PeerRuntime


@runtime_checkable
class CommandSource(Protocol):
    """Interactive input multiplexed into the peer's event loop.

    The runtime waits for :meth:`fileno` to become readable alongside
    every listening data socket, then calls :meth:`handle_input` once.
    """

    def fileno(self) -> int: ...  # noqa: D102

    def show_menu(self) -> None:
        """Present the available commands before each wait."""
        ...

    def handle_input(self, runtime: PeerRuntime) -> bool:
        """Run one command to completion; ``False`` ends the loop."""
        ...
