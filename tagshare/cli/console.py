"""Interactive peer console: the single-letter menu.

Implements :class:`tagshare.types.CommandSource` so the peer runtime can
wait on the terminal together with its listening sockets.
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from typing import TextIO

import click

from tagshare.errors import TagShareError
from tagshare.p2p.protocol import CONTENT_NAME_LEN
from tagshare.peer.runtime import PeerRuntime

MENU = (
    "\n=== P2P Peer Console ===\n"
    "R : Share a local file with the network\n"
    "S : Locate a file and fetch it from another peer\n"
    "O : Show the index's list of advertised content\n"
    "T : Stop sharing one advertised file\n"
    "Q : Remove everything you share and exit\n"
    "Select option (R/S/O/T/Q): "
)

_FILENAME_MAX = 127


def _shown(text: str) -> str:
    """Make a name received off the wire safe to print."""
    return text.encode("utf-8", errors="surrogateescape").decode("utf-8", errors="replace")


class Console:
    """Reads menu choices and prompts from *stream* (stdin by default)."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdin
        self._commands: dict[str, Callable[[PeerRuntime], None]] = {
            "R": self.share,
            "S": self.fetch,
            "O": self.catalogue,
            "T": self.withdraw,
        }

    def fileno(self) -> int:
        return self._stream.fileno()

    def show_menu(self) -> None:
        click.echo(MENU, nl=False)

    # ── Input helpers ──────────────────────────────────────────

    def _read_line(self) -> str | None:
        line = self._stream.readline()
        if line == "":
            return None
        return line.strip()

    def _ask(self, prompt: str, limit: int) -> str:
        """Prompt and return the first word of the answer, cut to *limit*."""
        click.echo(prompt, nl=False)
        line = self._read_line() or ""
        words = line.split()
        return words[0][:limit] if words else ""

    # ── Dispatch ───────────────────────────────────────────────

    def handle_input(self, runtime: PeerRuntime) -> bool:
        line = self._read_line()
        if line is None:
            click.echo()
            return False
        if not line:
            return True

        choice = line[0].upper()
        if choice == "Q":
            click.echo("Shutting down peer and deregistering any remaining content.")
            return False
        command = self._commands.get(choice)
        if command is None:
            click.echo("Unknown choice.")
            return True

        try:
            command(runtime)
        except TagShareError as exc:
            click.secho(exc.format(), fg="red")
        return True

    # ── Commands ───────────────────────────────────────────────

    def share(self, runtime: PeerRuntime) -> None:
        content = self._ask(f"Content tag (max {CONTENT_NAME_LEN} chars): ", CONTENT_NAME_LEN)
        if not content:
            click.echo("Invalid content name.")
            return
        filename = self._ask("Filename on disk to share: ", _FILENAME_MAX)
        if not filename:
            click.echo("Invalid filename.")
            return
        ad = runtime.advertise(content, filename)
        click.echo(f"Now serving '{ad.content}' from {ad.ip}:{ad.port}")

    def fetch(self, runtime: PeerRuntime) -> None:
        content = self._ask(
            "Type the content tag you want to look up and download: ", CONTENT_NAME_LEN
        )
        if not content:
            click.echo("Invalid content name.")
            return
        report = runtime.discover_and_fetch(content)
        provider, result = report.provider, report.result
        click.echo(
            f"Index chose provider {_shown(provider.peer)} "
            f"at {_shown(provider.ip)}:{provider.port}"
        )
        click.echo(f"Finished download: {result.size} bytes saved as '{result.path}'.")
        if not result.complete:
            click.secho(
                "Warning: the transfer stopped early; the copy may be partial.",
                fg="yellow",
            )
        if result.empty:
            click.secho(
                "Warning: downloaded 0 bytes - check that the server file is non-empty.",
                fg="yellow",
            )
        if report.advertisement is not None:
            ad = report.advertisement
            click.echo(f"[auto] Registered '{ad.content}' at {ad.ip}:{ad.port}")
        elif report.advertise_error is not None:
            click.echo(f"[auto] Not registered: {report.advertise_error}")

    def catalogue(self, runtime: PeerRuntime) -> None:
        click.echo("Catalogue reported by index (one line per active entry):")
        for row in runtime.enumerate():
            click.echo(
                f"  Peer={_shown(row.peer)}  Content={_shown(row.content)}  "
                f"Addr={_shown(row.ip)}:{row.port}"
            )

    def withdraw(self, runtime: PeerRuntime) -> None:
        content = self._ask("Content tag to stop serving: ", CONTENT_NAME_LEN)
        if not content:
            click.echo("Invalid content name.")
            return
        ad = runtime.withdraw(content)
        click.echo(f"Deregistered '{ad.content}' from index.")
