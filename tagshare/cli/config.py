"""CLI commands: config show, config set."""

from __future__ import annotations

from dataclasses import asdict, fields
from dataclasses import replace as dc_replace
from pathlib import Path
from typing import Any

import click

from tagshare.config import Config, load_config, save_config


@click.group("config")
def config_group() -> None:
    """Configuration management."""


@config_group.command("show")
@click.pass_obj
def config_show(obj: dict[str, Any]) -> None:
    """Show current configuration."""
    config: Config = obj["config"]
    for section_name, section in asdict(config).items():
        click.echo(f"[{section_name}]")
        for key, value in section.items():
            click.echo(f"  {key} = {value}")
        click.echo()


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_obj
def config_set(obj: dict[str, Any], key: str, value: str) -> None:
    """Set a configuration value (section.key = value).

    Example: tagshare config set peer.index_port 16000
    """
    if "." not in key:
        click.echo("Error: Key must be in 'section.key' format (e.g., peer.index_port)")
        raise SystemExit(2)

    section_name, field_name = key.split(".", 1)
    config_path: Path | None = obj["config_path"]
    config = load_config(config_path)

    section = getattr(config, section_name, None)
    if section is None or field_name not in {f.name for f in fields(section)}:
        click.echo(f"Error: Unknown setting '{key}'")
        raise SystemExit(2)

    current = getattr(section, field_name)
    try:
        coerced = _coerce_cli_value(value, current)
    except ValueError:
        click.echo(f"Error: '{value}' is not a valid {type(current).__name__}")
        raise SystemExit(2) from None

    updated = dc_replace(config, **{section_name: dc_replace(section, **{field_name: coerced})})
    save_config(updated, config_path)
    click.echo(f"Set {section_name}.{field_name} = {coerced}")


def _coerce_cli_value(value: str, current: object) -> object:
    """Coerce a CLI string to the type of the *current* value."""
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    if isinstance(current, Path):
        return Path(value)
    return value
