"""CLI command: peer — run an interactive peer against an index."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import click

from tagshare.cli.console import Console
from tagshare.errors import TagShareError
from tagshare.p2p.protocol import PEER_NAME_LEN
from tagshare.peer.control import IndexClient
from tagshare.peer.runtime import PeerRuntime
from tagshare.storage import ContentStorage


def _ask_peer_id() -> str:
    raw = click.prompt(f"Choose a peer id (<={PEER_NAME_LEN} chars)", type=str)
    words = raw.split()
    return words[0][:PEER_NAME_LEN] if words else ""


@click.command(name="peer")
@click.argument("index_host", required=False)
@click.argument("index_port", type=click.IntRange(1, 65535), required=False)
@click.argument("advertise_ip", required=False)
@click.option("--peer-id", default=None, help="Peer id (prompted when omitted)")
@click.option(
    "--shared-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding content to share",
)
@click.option(
    "--received-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory downloads are written to",
)
@click.pass_obj
def peer_cmd(
    obj: dict[str, Any],
    index_host: str | None,
    index_port: int | None,
    advertise_ip: str | None,
    peer_id: str | None,
    shared_dir: Path | None,
    received_dir: Path | None,
) -> None:
    """Run a peer talking to the index at INDEX_HOST:INDEX_PORT.

    ADVERTISE_IP overrides the address other peers are told to connect
    to (useful behind NAT); by default the outbound interface address
    is used.
    """
    config = obj["config"]
    peer_cfg = config.peer
    storage_cfg = config.storage

    pid = (peer_id or "")[:PEER_NAME_LEN] or _ask_peer_id()
    if not pid:
        click.secho("Invalid peer name.", fg="red", err=True)
        raise SystemExit(1)

    host = index_host or peer_cfg.index_host
    port = index_port or peer_cfg.index_port
    try:
        client = IndexClient(host, port, timeout=peer_cfg.control_timeout)
    except TagShareError as exc:
        click.secho(exc.format(), fg="red", err=True)
        raise SystemExit(1) from exc

    storage = ContentStorage(
        shared_dir=shared_dir or storage_cfg.shared_dir,
        received_dir=received_dir or storage_cfg.received_dir,
        received_prefix=storage_cfg.received_prefix,
    )
    runtime = PeerRuntime(
        pid,
        client,
        storage,
        advertise_ip=advertise_ip or peer_cfg.advertise_ip,
        max_advertisements=peer_cfg.max_advertisements,
        data_timeout=peer_cfg.data_timeout,
        chunk_size=peer_cfg.chunk_size,
        backlog=peer_cfg.listen_backlog,
    )

    click.echo(f"Peer '{runtime.peer_id}' is up. Talking to index at {host}:{port}")
    try:
        runtime.run(Console())
    except KeyboardInterrupt:
        click.echo()
    finally:
        runtime.close()
