"""CLI command: index — run the UDP index service."""

from __future__ import annotations

from typing import Any

import click

from tagshare.errors import TransportError
from tagshare.index.server import IndexServer


@click.command(name="index")
@click.argument("port", type=click.IntRange(1, 65535), required=False)
@click.option("--address", default=None, help="Address to bind (default: all)")
@click.option(
    "--capacity",
    type=click.IntRange(min=1),
    default=None,
    help="Registry slots (default: 512)",
)
@click.pass_obj
def index_cmd(
    obj: dict[str, Any],
    port: int | None,
    address: str | None,
    capacity: int | None,
) -> None:
    """Run the index on UDP PORT until interrupted.

    The index tracks which peer advertises which content tag and hands
    out the least-used provider on every search. It never sees file
    contents.
    """
    cfg = obj["config"].index
    server = IndexServer(
        host=address or cfg.listen_address,
        port=port or cfg.listen_port,
        capacity=capacity or cfg.capacity,
    )
    try:
        _host, bound_port = server.bind()
    except TransportError as exc:
        click.secho(exc.format(), fg="red", err=True)
        raise SystemExit(1) from exc

    click.echo(f"P2P index now waiting on UDP port {bound_port}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        click.echo("\nIndex shutting down.")
    finally:
        server.close()
