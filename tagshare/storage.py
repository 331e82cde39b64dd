"""Local file storage behind the data channel.

Content served to other peers is looked up by its tag: first in the
shared directory, then among the copies this peer downloaded earlier,
so a peer that became a provider after a fetch can serve what it got.
"""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO

import structlog

logger = structlog.get_logger()

DEFAULT_RECEIVED_PREFIX = "recv_"


def is_safe_name(name: str) -> bool:
    """True if *name* is a bare file name (no directories, not ``.``/``..``)."""
    return bool(name) and name not in (".", "..") and "/" not in name and "\\" not in name


class ContentStorage:
    """Resolves content tags to files on local disk.

    Args:
        shared_dir: Directory holding content this peer shares.
        received_dir: Directory downloads are written to.
        received_prefix: Prefix of downloaded file names.
    """

    def __init__(
        self,
        shared_dir: Path | str = ".",
        received_dir: Path | str = ".",
        received_prefix: str = DEFAULT_RECEIVED_PREFIX,
    ) -> None:
        self.shared_dir = Path(shared_dir)
        self.received_dir = Path(received_dir)
        self.received_prefix = received_prefix

    def received_path(self, content: str) -> Path:
        """Where a download of *content* is stored."""
        return self.received_dir / f"{self.received_prefix}{content}"

    def locate(self, content: str) -> Path | None:
        """Return the file serving *content*, or ``None``."""
        if not is_safe_name(content):
            return None
        for candidate in (self.shared_dir / content, self.received_path(content)):
            if candidate.is_file():
                return candidate
        return None

    def open_for_serving(self, content: str) -> BinaryIO | None:
        """Open *content* for reading, or return ``None`` if it is missing."""
        path = self.locate(content)
        if path is None:
            return None
        try:
            return open(path, "rb")  # noqa: SIM115
        except OSError as exc:
            logger.warning("content_open_failed", path=str(path), error=str(exc))
            return None

    def open_for_receiving(self, content: str) -> tuple[Path, BinaryIO]:
        """Create (or truncate) the download file for *content*.

        Raises:
            ValueError: If *content* is not a bare file name.
            OSError: If the file cannot be created.
        """
        if not is_safe_name(content):
            raise ValueError(f"Unsafe content name: {content!r}")
        self.received_dir.mkdir(parents=True, exist_ok=True)
        path = self.received_path(content)
        return path, open(path, "wb")  # noqa: SIM115
