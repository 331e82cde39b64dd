"""Structured error codes and the exception hierarchy.

Every failure the index or a peer can report is listed once in
:data:`ERRORS` with a human-readable resolution. Exceptions raised by
the core carry the matching short code so the console can print the
catalog entry instead of a bare traceback.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import ClassVar


class ErrorCategory(StrEnum):
    """Error category classification."""

    WIRE = "WIRE"
    REGISTRY = "REGISTRY"
    NETWORK = "NETWORK"
    TRANSFER = "TRANSFER"
    LOCAL = "LOCAL"


@dataclass(frozen=True)
class ErrorDetail:
    """Structured error with code, message, and resolution."""

    code: str
    category: ErrorCategory
    message: str
    resolution: str

    def format(self) -> str:
        return f"Error [{self.code}]: {self.message}\nResolution: {self.resolution}"


# ── Pre-defined error catalog ─────────────────────────────────────

ERRORS: dict[str, ErrorDetail] = {
    "E001": ErrorDetail(
        code="TAGSHARE_E001",
        category=ErrorCategory.WIRE,
        message="Malformed frame (wrong length)",
        resolution="Make sure both sides speak the same frame layout (39 bytes)",
    ),
    "E002": ErrorDetail(
        code="TAGSHARE_E002",
        category=ErrorCategory.REGISTRY,
        message="Entry has an empty field or a zero port",
        resolution="Provide a peer id, a content tag, an address and a port",
    ),
    "E003": ErrorDetail(
        code="TAGSHARE_E003",
        category=ErrorCategory.REGISTRY,
        message="This peer id already registered that content",
        resolution="Choose a different peer id before registering this content",
    ),
    "E004": ErrorDetail(
        code="TAGSHARE_E004",
        category=ErrorCategory.REGISTRY,
        message="Table is full",
        resolution="Withdraw some advertised content and try again",
    ),
    "E005": ErrorDetail(
        code="TAGSHARE_E005",
        category=ErrorCategory.REGISTRY,
        message="No matching entry",
        resolution="Check the content tag (and peer id) for typos",
    ),
    "E006": ErrorDetail(
        code="TAGSHARE_E006",
        category=ErrorCategory.NETWORK,
        message="No reply from the index",
        resolution="Check the index address/port and that the index is running",
    ),
    "E007": ErrorDetail(
        code="TAGSHARE_E007",
        category=ErrorCategory.TRANSFER,
        message="Content provider stopped responding",
        resolution="Try the search again; the index will pick another provider",
    ),
    "E008": ErrorDetail(
        code="TAGSHARE_E008",
        category=ErrorCategory.WIRE,
        message="Unexpected reply type",
        resolution="Make sure the remote side is a tagshare index or peer",
    ),
    "E009": ErrorDetail(
        code="TAGSHARE_E009",
        category=ErrorCategory.REGISTRY,
        message="Request rejected by the index",
        resolution=(
            "The peer id may already have registered that content, or the "
            "index is full. Choose a different peer id before retrying."
        ),
    ),
    "E010": ErrorDetail(
        code="TAGSHARE_E010",
        category=ErrorCategory.TRANSFER,
        message="Content server reported: file not found",
        resolution="The provider no longer holds the file; search again later",
    ),
    "E011": ErrorDetail(
        code="TAGSHARE_E011",
        category=ErrorCategory.LOCAL,
        message="Content is already advertised by this peer",
        resolution="Withdraw it first if you want to advertise it again",
    ),
    "E012": ErrorDetail(
        code="TAGSHARE_E012",
        category=ErrorCategory.NETWORK,
        message="Could not open a network socket",
        resolution="Stop the process holding the port or use a different port",
    ),
    "E013": ErrorDetail(
        code="TAGSHARE_E013",
        category=ErrorCategory.LOCAL,
        message="Could not save downloaded content",
        resolution="Check that the received directory is writable and has free space",
    ),
}


def get_error(code: str) -> ErrorDetail | None:
    """Look up an error by short code (e.g. 'E001')."""
    return ERRORS.get(code)


def format_error(code: str) -> str:
    """Format an error message by code."""
    err = ERRORS.get(code)
    if err is None:
        return f"Unknown error: {code}"
    return err.format()


# ── Exceptions ────────────────────────────────────────────────────


class TagShareError(Exception):
    """Base class for all tagshare failures.

    Subclasses set :attr:`code` to their catalog entry. The exception
    message carries the specific context; :attr:`detail` carries the
    generic message and resolution.
    """

    code: ClassVar[str] = ""

    @property
    def detail(self) -> ErrorDetail | None:
        return get_error(self.code)

    def format(self) -> str:
        detail = self.detail
        if detail is None:
            return str(self)
        text = str(self) or detail.message
        return f"Error [{detail.code}]: {text}\nResolution: {detail.resolution}"


class MalformedFrameError(TagShareError, ValueError):
    """Raised when a received frame does not have the fixed size."""

    code = "E001"


class InvalidEntryError(TagShareError):
    """Raised when a registration carries empty fields or a zero port."""

    code = "E002"


class DuplicateEntryError(TagShareError):
    """Raised when a (peer, content) pair is registered twice."""

    code = "E003"


class CapacityError(TagShareError):
    """Raised when a fixed-capacity table has no free slot."""

    code = "E004"


class NotFoundError(TagShareError):
    """Raised when no entry matches a search or deregistration."""

    code = "E005"


class ControlTimeoutError(TagShareError, TimeoutError):
    """Raised when the index does not reply within the control timeout."""

    code = "E006"


class TransferTimeoutError(TagShareError, TimeoutError):
    """Raised when a content provider goes silent before the header."""

    code = "E007"


class UnexpectedReplyError(TagShareError):
    """Raised when a reply carries a type the workflow does not expect."""

    code = "E008"


class RejectedError(TagShareError):
    """Raised when the index answers a request with an Error frame."""

    code = "E009"


class ContentUnavailableError(TagShareError):
    """Raised when a content server answers a download with Error."""

    code = "E010"


class AlreadyAdvertisedError(TagShareError):
    """Raised when a peer tries to advertise the same tag twice."""

    code = "E011"


class TransportError(TagShareError, OSError):
    """Raised when a socket cannot be created, bound or connected."""

    code = "E012"


class LocalStorageError(TagShareError):
    """Raised when a download cannot be written to local disk."""

    code = "E013"
