"""Configuration management for tagshare.

Loads settings from ~/.tagshare/config.toml with environment variable overrides.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from dataclasses import fields as dataclass_fields
from pathlib import Path
from typing import TypeVar

import structlog

logger = structlog.get_logger()

# Default paths
DEFAULT_CONFIG_DIR = Path.home() / ".tagshare"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.toml"


@dataclass(frozen=True)
class IndexConfig:
    """Index service settings."""

    listen_address: str = "0.0.0.0"
    listen_port: int = 15000
    capacity: int = 512


@dataclass(frozen=True)
class PeerConfig:
    """Peer runtime and protocol settings."""

    index_host: str = "127.0.0.1"
    index_port: int = 15000
    advertise_ip: str = ""  # empty = auto-detect
    max_advertisements: int = 16
    control_timeout: float = 2.0  # seconds to wait for an index reply
    data_timeout: float = 5.0  # seconds of data-channel inactivity
    chunk_size: int = 4096
    listen_backlog: int = 5


@dataclass(frozen=True)
class StorageConfig:
    """Where shared content lives and downloads land."""

    shared_dir: Path = field(default_factory=lambda: Path("."))
    received_dir: Path = field(default_factory=lambda: Path("."))
    received_prefix: str = "recv_"


@dataclass(frozen=True)
class LogConfig:
    """Diagnostic logging settings."""

    level: str = "info"


@dataclass(frozen=True)
class Config:
    """Root configuration container."""

    index: IndexConfig = field(default_factory=IndexConfig)
    peer: PeerConfig = field(default_factory=PeerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log: LogConfig = field(default_factory=LogConfig)


_SECTIONS: tuple[tuple[str, type], ...] = (
    ("index", IndexConfig),
    ("peer", PeerConfig),
    ("storage", StorageConfig),
    ("log", LogConfig),
)


def _env_override(section: str, key: str) -> str | None:
    """Check for TAGSHARE_{SECTION}_{KEY} environment variable."""
    env_key = f"TAGSHARE_{section.upper()}_{key.upper()}"
    return os.environ.get(env_key)


def _coerce(value: str, target_type: type) -> object:
    """Coerce a string value to the target type."""
    if target_type is bool:
        return value.lower() in ("true", "1", "yes")
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    if target_type is Path:
        return Path(value)
    return value


# Configuration value constraints
_VALUE_CONSTRAINTS: dict[str, tuple[float, float]] = {
    "listen_port": (1, 65535),
    "index_port": (1, 65535),
    "capacity": (1, 65536),
    "max_advertisements": (1, 1024),
    "control_timeout": (0.1, 60.0),
    "data_timeout": (0.1, 600.0),
    "chunk_size": (512, 1048576),
    "listen_backlog": (1, 128),
}

# Allowed values for string enums
_ALLOWED_VALUES: dict[str, frozenset[str]] = {
    "level": frozenset({"debug", "info", "warning", "error", "critical"}),
}

_FIELD_TYPES: dict[str, type] = {
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "Path": Path,
}


def _validate_value(key: str, value: object) -> object:
    """Validate a config value against known constraints."""
    if key in _VALUE_CONSTRAINTS and isinstance(value, (int, float)):
        lo, hi = _VALUE_CONSTRAINTS[key]
        if not (lo <= value <= hi):
            logger.warning(
                "config_value_out_of_range",
                key=key,
                value=value,
                min=lo,
                max=hi,
            )
            # Clamp to valid range
            return type(value)(max(lo, min(hi, value)))
    if (
        key in _ALLOWED_VALUES
        and isinstance(value, str)
        and value.lower() not in _ALLOWED_VALUES[key]
    ):
        logger.warning(
            "config_invalid_value",
            key=key,
            value=value,
            allowed=sorted(_ALLOWED_VALUES[key]),
        )
        return None  # Will use default
    return value


T = TypeVar("T")


def _build_section(
    cls: type[T], toml_section: dict[str, object], section_name: str
) -> T:
    """Build a dataclass instance from TOML data + env overrides."""
    kwargs: dict[str, object] = {}
    for f in dataclass_fields(cls):  # type: ignore[arg-type]
        # With postponed annotations f.type is a string like "int"
        target = _FIELD_TYPES.get(str(f.type), str)
        raw = toml_section.get(f.name)
        env_val = _env_override(section_name, f.name)
        if env_val is not None:
            try:
                raw = _coerce(env_val, target)
            except ValueError:
                logger.warning(
                    "config_invalid_value", key=f.name, value=env_val, source="env"
                )
                raw = None
        if raw is not None:
            if target is Path:
                raw = Path(str(raw))
            elif target is float and isinstance(raw, int):
                raw = float(raw)
            validated = _validate_value(f.name, raw)
            if validated is not None:
                kwargs[f.name] = validated
    return cls(**kwargs)


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from TOML file with environment variable overrides.

    Priority: env vars > config.toml > defaults.

    Args:
        config_path: Path to config file. Defaults to ~/.tagshare/config.toml.

    Returns:
        Populated Config instance.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    raw: dict[str, object] = {}

    if path.exists():
        with open(path, "rb") as f:
            raw = tomllib.load(f)
        logger.info("config_loaded", path=str(path))
    else:
        logger.debug("config_default", path=str(path), reason="file not found")

    sections = {
        name: _build_section(cls, raw.get(name, {}), name)  # type: ignore[arg-type]
        for name, cls in _SECTIONS
    }
    return Config(**sections)  # type: ignore[arg-type]


def save_config(config: Config, config_path: Path | None = None) -> None:
    """Save configuration to TOML file.

    Only writes sections/keys that differ from defaults to keep
    the config file clean and readable.

    Args:
        config: Config instance to persist.
        config_path: Path to config file. Defaults to ~/.tagshare/config.toml.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    defaults = Config()
    lines: list[str] = ["# tagshare configuration", ""]

    for section_name, _cls in _SECTIONS:
        current_section = getattr(config, section_name)
        default_section = getattr(defaults, section_name)
        section_lines: list[str] = []
        for f in dataclass_fields(current_section):
            cur_val = getattr(current_section, f.name)
            if cur_val == getattr(default_section, f.name):
                continue
            if isinstance(cur_val, bool):
                section_lines.append(f"{f.name} = {str(cur_val).lower()}")
            elif isinstance(cur_val, (int, float)):
                section_lines.append(f"{f.name} = {cur_val}")
            else:
                escaped = str(cur_val).replace("\\", "\\\\").replace('"', '\\"')
                section_lines.append(f'{f.name} = "{escaped}"')
        if section_lines:
            lines.append(f"[{section_name}]")
            lines.extend(section_lines)
            lines.append("")

    path.write_text("\n".join(lines), encoding="utf-8")
    logger.info("config_saved", path=str(path))
