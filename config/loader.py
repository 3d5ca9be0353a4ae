"""
Configuration loading.

Values are layered, later layers winning:

    built-in defaults < TOML file < FXSENT_* environment variables

The TOML file is either passed explicitly or the first one found in
CONFIG_PATHS.
"""

import logging
import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .schema import SentimentConfig

logger = logging.getLogger(__name__)

CONFIG_PATHS = [
    Path("fxsentiment.toml"),
    Path(".fxsentiment.toml"),
    Path.home() / ".config" / "fxsentiment" / "config.toml",
    Path("/etc/fxsentiment/config.toml"),
]

ENV_PREFIX = "FXSENT_"

# FXSENT_<name> -> path inside the config tree
ENV_OVERRIDES: dict[str, tuple[str, ...]] = {
    "DATA_DIR": ("storage", "data_dir"),
    "LOG_LEVEL": ("logging", "level"),
    "INTERVAL_MINUTES": ("scheduler", "interval_minutes"),
    "SCHEDULER_MODE": ("scheduler", "mode"),
    "USER_AGENT": ("http", "user_agent"),
    "SMTP_USER": ("notifications", "username"),
    "SMTP_PASSWORD": ("notifications", "password"),
    "NOTIFY_TO": ("notifications", "to_emails"),
}


class ConfigError(Exception):
    """Invalid or unreadable configuration; str() names the file and field when known."""

    def __init__(self, message: str, source: str | None = None, field: str | None = None):
        self.source = source
        self.field = field
        super().__init__(message)

    def __str__(self) -> str:
        text = super().__str__()
        if self.source:
            text += f" | Source: {self.source}"
        if self.field:
            text += f" | Field: {self.field}"
        return text


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as e:
        raise ConfigError(f"Failed to parse TOML: {e}", source=str(path)) from e
    logger.info(f"Loaded config from: {path}")
    return data


def _file_layer(config_path: Path | str | None) -> dict[str, Any]:
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}", source=str(path))
        return _read_toml(path)

    found = next((p for p in CONFIG_PATHS if p.exists()), None)
    return _read_toml(found) if found else {}


def _apply_env_overrides(data: dict[str, Any]) -> None:
    names = [name for name in ENV_OVERRIDES if f"{ENV_PREFIX}{name}" in os.environ]
    for name in names:
        *parents, leaf = ENV_OVERRIDES[name]
        node = data
        for key in parents:
            node = node.setdefault(key, {})
        node[leaf] = os.environ[f"{ENV_PREFIX}{name}"]
    if names:
        logger.debug(f"Environment overrides: {', '.join(ENV_PREFIX + n for n in names)}")


def load_config(config_path: Path | str | None = None) -> SentimentConfig:
    """
    Build a validated SentimentConfig.

    Raises:
        ConfigError: missing or unparsable file, or a value that fails
            validation (``field`` names the first offending key)
    """
    data = _file_layer(config_path)
    _apply_env_overrides(data)

    try:
        return SentimentConfig(**data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise ConfigError(f"Invalid configuration: {first.get('msg', e)}", field=field or None) from e


@lru_cache
def get_config() -> SentimentConfig:
    """Process-wide configuration, loaded on first use."""
    return load_config()


def reload_config() -> SentimentConfig:
    get_config.cache_clear()
    return get_config()
