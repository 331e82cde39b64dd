"""tagshare — content-tag index and direct peer-to-peer file transfer.

A central index service tracks which peer advertises which content tag
at which address; peers register, discover and fetch content directly
from each other.
"""

from __future__ import annotations

__version__ = "0.1.0"
