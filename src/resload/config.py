"""Configuration loading and validation."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .resolver import DEFAULT_SCRIPT_SUFFIX
from .transport import DEFAULT_TIMEOUT
from .types import LibConfig

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.config/resload/config.yaml")
DEFAULT_ROOT_DIR = Path("~/.local/lib/resload")
DEFAULT_LOG_LEVEL = "info"


class ConfigError(ValueError):
    """Raised when configuration is invalid or missing."""


@dataclass(frozen=True)
class LoggingConfig:
    """Logging-related configuration."""

    level: str = DEFAULT_LOG_LEVEL
    debug_file: bool = False


@dataclass(frozen=True)
class CacheConfig:
    """Cache generation and which cache backs the loader."""

    enabled: bool = False
    timestamp: str | None = None
    response_cache: bool = False


@dataclass(frozen=True)
class Config:
    """Fully parsed configuration."""

    root_dir: Path
    base_path: str
    cache: CacheConfig
    logging: LoggingConfig
    libs: dict[str, LibConfig] = field(default_factory=dict)
    script_suffix: str = DEFAULT_SCRIPT_SUFFIX
    timeout: float = DEFAULT_TIMEOUT

    @property
    def cache_dir(self) -> Path:
        return self.root_dir / "cache"

    @property
    def is_remote(self) -> bool:
        return self.base_path.startswith(("http://", "https://"))


def load_config(path: Path | str | None = None) -> Config:
    """Load and validate configuration from YAML."""

    config_path = resolve_config_path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    if not isinstance(raw, dict):
        raise ConfigError("Configuration root must be a mapping.")

    return _parse_config(raw)


def resolve_config_path(explicit: Path | str | None) -> Path:
    if explicit:
        return Path(explicit).expanduser()
    env_path = os.environ.get("RESLOAD_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH.expanduser()


def _parse_config(raw: dict[str, Any]) -> Config:
    root_dir = Path(raw.get("rootdir") or raw.get("root_dir") or DEFAULT_ROOT_DIR).expanduser()
    base_path = raw.get("base_path")
    if not base_path or not isinstance(base_path, str):
        raise ConfigError("base_path must be a URL or directory path.")
    script_suffix = raw.get("script_suffix", DEFAULT_SCRIPT_SUFFIX)
    if not isinstance(script_suffix, str):
        raise ConfigError("script_suffix must be a string.")
    return Config(
        root_dir=root_dir,
        base_path=base_path,
        cache=_parse_cache(raw.get("cache"), raw.get("cacheTimestamp")),
        logging=_parse_logging(raw.get("logging")),
        libs=_parse_libs(raw.get("libs")),
        script_suffix=script_suffix,
        timeout=_parse_timeout(raw.get("timeout")),
    )


def _parse_cache(value: Any, legacy_timestamp: Any) -> CacheConfig:
    if value is None:
        value = {}
    if not isinstance(value, dict):
        raise ConfigError("cache must be a mapping.")
    timestamp = value.get("timestamp")
    if timestamp is None and legacy_timestamp is not None:
        LOGGER.warning("Field 'cacheTimestamp' is deprecated; move it to 'cache.timestamp'.")
        timestamp = legacy_timestamp
    return CacheConfig(
        enabled=bool(value.get("enabled", False)),
        timestamp=str(timestamp) if timestamp is not None else None,
        response_cache=bool(value.get("response_cache", False)),
    )


def _parse_libs(value: Any) -> dict[str, LibConfig]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError("libs must be a mapping of library name to config.")

    libs: dict[str, LibConfig] = {}
    for name, raw_cfg in value.items():
        if raw_cfg is None:
            libs[str(name)] = LibConfig()
            continue
        if not isinstance(raw_cfg, dict):
            raise ConfigError(f"Library '{name}' config must be a mapping.")
        libs[str(name)] = LibConfig.from_mapping(raw_cfg)
    return libs


def _parse_timeout(value: Any) -> float:
    if value is None:
        return DEFAULT_TIMEOUT
    try:
        timeout = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError("timeout must be a number of seconds.") from exc
    if timeout <= 0:
        raise ConfigError("timeout must be positive.")
    return timeout


def _parse_logging(value: Any) -> LoggingConfig:
    if value is None:
        return LoggingConfig()
    if not isinstance(value, dict):
        raise ConfigError("logging must be a mapping.")
    level = str(value.get("level", DEFAULT_LOG_LEVEL)).lower()
    debug_file = bool(value.get("debug_file", False))
    return LoggingConfig(level=level, debug_file=debug_file)


__all__ = [
    "CacheConfig",
    "Config",
    "ConfigError",
    "LoggingConfig",
    "load_config",
    "resolve_config_path",
]
