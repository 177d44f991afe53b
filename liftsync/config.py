"""Server configuration loaded from a file with environment overrides.

Settings are read from a TOML or JSON file and then overridden by
environment variables named ``APP_<SECTION>__<FIELD>``, for example
``APP_SERVER__PORT``.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path
from typing import Any

ENV_PREFIX = "APP"
"""Prefix of environment variables that override file settings."""

ENV_SEPARATOR = "__"
"""Separator between section and field in environment variable names."""

DEFAULT_CONFIG_NAME = "config/default"
"""Configuration file looked up when no path is given."""

_EXTENSIONS = (".toml", ".json")
_U16_MAX = 2**16 - 1
_U32_MAX = 2**32 - 1
_U64_MAX = 2**64 - 1


class ConfigError(Exception):
    """Raised when configuration cannot be found, parsed or validated."""


@dataclass(frozen=True)
class ServerSettings:
    """Address the server listens on."""

    host: str = "127.0.0.1"
    port: int = 8080


@dataclass(frozen=True)
class StorageSettings:
    """Where the server keeps its data."""

    path: Path = Path("data")


@dataclass(frozen=True)
class RateLimitSettings:
    """Request rate limit: at most ``max_requests`` per ``window_secs``."""

    window_secs: int = 60
    max_requests: int = 100


@dataclass(frozen=True)
class Settings:
    """Complete server configuration."""

    server: ServerSettings = field(default_factory=ServerSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)

    @classmethod
    def load(
        cls,
        path: str | PathLike[str] = DEFAULT_CONFIG_NAME,
        environ: Mapping[str, str] | None = None,
    ) -> Settings:
        """Read settings from ``path`` and apply ``APP_`` environment overrides."""
        data = _read_file(_resolve(path))
        overrides = _environment_overrides(os.environ if environ is None else environ)
        return cls.from_mapping(_merge(data, overrides))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Settings:
        """Build validated settings from nested mappings; every field is required."""
        server = _section(data, "server")
        storage = _section(data, "storage")
        rate_limit = _section(data, "rate_limit")
        return cls(
            server=ServerSettings(
                host=_string(server, "server", "host"),
                port=_integer(server, "server", "port", _U16_MAX),
            ),
            storage=StorageSettings(path=Path(_string(storage, "storage", "path"))),
            rate_limit=RateLimitSettings(
                window_secs=_integer(rate_limit, "rate_limit", "window_secs", _U64_MAX),
                max_requests=_integer(rate_limit, "rate_limit", "max_requests", _U32_MAX),
            ),
        )


def load_settings(path: str | PathLike[str] = DEFAULT_CONFIG_NAME) -> Settings:
    """Load settings from ``path`` and the process environment."""
    return Settings.load(path)


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    if name not in data:
        raise ConfigError(f"missing field `{name}`")
    value = data[name]
    if not isinstance(value, Mapping):
        raise ConfigError(f"`{name}` must be a table")
    return value


def _value(section: Mapping[str, Any], section_name: str, key: str) -> Any:
    if key not in section:
        raise ConfigError(f"missing field `{section_name}.{key}`")
    return section[key]


def _string(section: Mapping[str, Any], section_name: str, key: str) -> str:
    value = _value(section, section_name, key)
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ConfigError(f"`{section_name}.{key}` must be a string")
    return str(value)


def _integer(section: Mapping[str, Any], section_name: str, key: str, maximum: int) -> int:
    value = _value(section, section_name, key)
    if isinstance(value, bool):
        raise ConfigError(f"`{section_name}.{key}` must be an integer")
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ConfigError(f"`{section_name}.{key}` must be an integer, got {value!r}") from None
    elif not isinstance(value, int):
        raise ConfigError(f"`{section_name}.{key}` must be an integer")
    if not 0 <= value <= maximum:
        raise ConfigError(f"`{section_name}.{key}` must be between 0 and {maximum}, got {value}")
    return value


def _resolve(path: str | PathLike[str]) -> Path:
    candidate = Path(path)
    if candidate.suffix in _EXTENSIONS and candidate.is_file():
        return candidate
    for extension in _EXTENSIONS:
        with_extension = candidate.with_name(candidate.name + extension)
        if with_extension.is_file():
            return with_extension
    raise ConfigError(f'configuration file "{path}" not found')


def _read_file(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text) if path.suffix == ".json" else tomllib.loads(text)
    except (OSError, ValueError) as exc:
        raise ConfigError(f"cannot read configuration file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"configuration file {path} does not hold a table")
    return data


def _environment_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    prefix = ENV_PREFIX + "_"
    overrides: dict[str, Any] = {}
    for name, value in environ.items():
        if not name.upper().startswith(prefix):
            continue
        parts = [part.lower() for part in name[len(prefix):].split(ENV_SEPARATOR)]
        if not all(parts):
            continue
        node = overrides
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[parts[-1]] = value
    return overrides


def _merge(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = _merge(current, value)
        else:
            merged[key] = value
    return merged