"""
Configuration management for audiorelay.

Settings are loaded once at startup and passed explicitly to the web layer.
Sources, lowest to highest precedence:

1. Defaults defined in this module
2. An optional TOML file ([server], [extractor], [relay], [lookup] tables)
3. An optional .env file
4. The process environment (SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET, PORT, HOST)
"""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotenv import dotenv_values

logger = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000

# yt-dlp flags: audio only, mp3 container, single video, write to stdout
DEFAULT_EXTRACT_ARGS: tuple[str, ...] = (
    "-x",
    "--audio-format",
    "mp3",
    "--no-playlist",
    "-o",
    "-",
)

DEFAULT_LOOKUP_ARGS: tuple[str, ...] = (
    "--get-id",
    "--no-playlist",
    "--no-warnings",
)


class ConfigError(ValueError):
    """Raised when configuration values are invalid."""


@dataclass(frozen=True, slots=True)
class ExtractorSettings:
    """How the external extractor binary is invoked."""

    binary: str = "yt-dlp"
    args: tuple[str, ...] = DEFAULT_EXTRACT_ARGS
    capture_stderr: bool = True


@dataclass(frozen=True, slots=True)
class RelaySettings:
    """Tuning for the stdout -> HTTP relay."""

    queue_capacity: int = 32
    read_size: int = 8192


@dataclass(frozen=True, slots=True)
class LookupSettings:
    """How the single-result title search is invoked."""

    binary: str = "yt-dlp"
    args: tuple[str, ...] = DEFAULT_LOOKUP_ARGS
    search_prefix: str = "ytsearch1:"


@dataclass(frozen=True, slots=True)
class CatalogSettings:
    """Credentials for the Spotify Web API (client-credentials flow)."""

    client_id: str | None = None
    client_secret: str | None = None
    result_limit: int = 10

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id) and bool(self.client_secret)


@dataclass(frozen=True, slots=True)
class Settings:
    """Top-level immutable application settings."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    extractor: ExtractorSettings = field(default_factory=ExtractorSettings)
    relay: RelaySettings = field(default_factory=RelaySettings)
    lookup: LookupSettings = field(default_factory=LookupSettings)
    catalog: CatalogSettings = field(default_factory=CatalogSettings)


def _parse_port(value: object) -> int:
    try:
        port = int(str(value).strip())
    except ValueError as e:
        raise ConfigError(f"Invalid port: {value!r}") from e
    if not 0 < port < 65536:
        raise ConfigError(f"Port out of range: {port}")
    return port


def _positive_int(data: Mapping[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ConfigError(f"{key} must be a positive integer, got {value!r}")
    return value


def _args(data: Mapping[str, Any], default: tuple[str, ...]) -> tuple[str, ...]:
    value = data.get("args")
    if value is None:
        return default
    if not isinstance(value, list) or not all(isinstance(a, str) for a in value):
        raise ConfigError("args must be a list of strings")
    return tuple(value)


def _load_toml(config_path: Path) -> dict[str, Any]:
    logger.debug("Loading config from %s", config_path)
    with config_path.open("rb") as f:
        return tomllib.load(f)


def load_settings(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    env_file: Path | None = None,
) -> Settings:
    """
    Build Settings from defaults, an optional TOML file and the environment.

    Args:
        config_path: Optional TOML config file.
        environ: Environment mapping. Defaults to os.environ.
        env_file: Optional .env file. Values in `environ` take precedence.

    Returns:
        The loaded Settings.

    Raises:
        ConfigError: If a value is malformed.
    """
    data: dict[str, Any] = _load_toml(config_path) if config_path is not None else {}

    env: dict[str, str] = {}
    if env_file is not None and env_file.exists():
        env.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
    env.update(os.environ if environ is None else environ)

    server = data.get("server", {})
    extractor = data.get("extractor", {})
    relay = data.get("relay", {})
    lookup = data.get("lookup", {})

    host = env.get("HOST") or server.get("host", DEFAULT_HOST)
    port = _parse_port(env.get("PORT") or server.get("port", DEFAULT_PORT))

    settings = Settings(
        host=str(host),
        port=port,
        extractor=ExtractorSettings(
            binary=str(extractor.get("binary", "yt-dlp")),
            args=_args(extractor, DEFAULT_EXTRACT_ARGS),
            capture_stderr=bool(extractor.get("capture_stderr", True)),
        ),
        relay=RelaySettings(
            queue_capacity=_positive_int(relay, "queue_capacity", 32),
            read_size=_positive_int(relay, "read_size", 8192),
        ),
        lookup=LookupSettings(
            binary=str(lookup.get("binary", "yt-dlp")),
            args=_args(lookup, DEFAULT_LOOKUP_ARGS),
            search_prefix=str(lookup.get("search_prefix", "ytsearch1:")),
        ),
        catalog=CatalogSettings(
            client_id=env.get("SPOTIFY_CLIENT_ID") or None,
            client_secret=env.get("SPOTIFY_CLIENT_SECRET") or None,
        ),
    )

    if not settings.catalog.has_credentials:
        logger.warning("Spotify credentials not set; /spotify/search will return 502")

    return settings
