"""tagshare CLI entry point.

Delegates to ``tagshare.cli`` which houses all Click commands.
Kept minimal so that ``python -m tagshare`` and the ``tagshare``
console-script entry point both resolve here.
"""

from __future__ import annotations

from tagshare.cli import cli


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
