"""tagshare CLI — Click command group and sub-commands.

- ``index`` — run the UDP index service
- ``peer`` — run an interactive peer
- ``config`` — ``config show``, ``config set``
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
import structlog

from tagshare import __version__
from tagshare.config import load_config

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def configure_logging(level: str = "info") -> None:
    """Route structlog through stdlib logging on stderr at *level*.

    Diagnostics go to stderr so they do not interleave with the
    interactive menu on stdout.
    """
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        force=True,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


@click.group()
@click.version_option(version=__version__, prog_name="tagshare")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.tagshare/config.toml)",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Diagnostic log level (overrides [log] level)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, log_level: str | None) -> None:
    """tagshare — content-tag index and peer-to-peer file sharing."""
    configure_logging(log_level or "info")
    config = load_config(config_path)
    if log_level is None and config.log.level != "info":
        configure_logging(config.log.level)
    ctx.obj = {"config": config, "config_path": config_path}


# Register sub-command modules
from tagshare.cli.config import config_group  # noqa: E402
from tagshare.cli.index import index_cmd  # noqa: E402
from tagshare.cli.peer import peer_cmd  # noqa: E402

cli.add_command(index_cmd)
cli.add_command(peer_cmd)
cli.add_command(config_group)
