"""CLI configuration management.

Handles persistent tool settings stored in ~/.lampkit/config.yaml.
Supports environment variable overrides and CLI flag precedence.
"""

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .shared.logging import get_logger
from .shared.paths import CONFIG_FILE

logger = get_logger(__name__)

# Default values
DEFAULT_LOG_LEVEL = "warning"
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF = 5.0
DEFAULT_KAFKA_VERSION = "2.8.1"

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")

# Environment variable mappings
ENV_VARS = {
    "log_file": "LAMPKIT_LOG_FILE",
    "log_level": "LAMPKIT_LOG_LEVEL",
    "retry_attempts": "LAMPKIT_RETRY_ATTEMPTS",
    "retry_backoff": "LAMPKIT_RETRY_BACKOFF",
    "kafka_version": "LAMPKIT_KAFKA_VERSION",
    "artifact_dir": "LAMPKIT_ARTIFACT_DIR",
}


def _log_level(value: Any) -> str:
    level = str(value).lower()
    if level not in LOG_LEVELS:
        raise ValueError(f"Invalid log level: {value}. Expected one of {', '.join(LOG_LEVELS)}")
    return level


def _positive_int(value: Any) -> int:
    number = int(value)
    if number < 1:
        raise ValueError(f"Expected a positive integer, got {value}")
    return number


def _non_negative_float(value: Any) -> float:
    number = float(value)
    if number < 0:
        raise ValueError(f"Expected a non-negative number, got {value}")
    return number


# Parsers for every known key; also the list of valid keys for `config set`
PARSERS: dict[str, Callable[[Any], Any]] = {
    "log_file": str,
    "log_level": _log_level,
    "retry_attempts": _positive_int,
    "retry_backoff": _non_negative_float,
    "kafka_version": str,
    "artifact_dir": str,
}


@dataclass
class CLIConfig:
    """CLI configuration."""

    log_file: str | None = None
    log_level: str = DEFAULT_LOG_LEVEL
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_backoff: float = DEFAULT_RETRY_BACKOFF
    kafka_version: str = DEFAULT_KAFKA_VERSION
    artifact_dir: str | None = None

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict)

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")

    def as_dict(self) -> dict[str, Any]:
        return {key: getattr(self, key) for key in PARSERS}


def get_config_path() -> Path:
    """Get the CLI config file path.

    Returns:
        Path to ~/.lampkit/config.yaml
    """
    return CONFIG_FILE


def _read_config_file(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("ignoring unreadable config file", path=str(config_path), error=str(e))
        return {}
    if not isinstance(data, dict):
        logger.warning("ignoring config file without a mapping", path=str(config_path))
        return {}
    return data


def load_config() -> CLIConfig:
    """Load CLI configuration.

    Precedence (highest to lowest):
    1. Environment variables
    2. Config file (~/.lampkit/config.yaml)
    3. Defaults

    Invalid values are skipped with a warning and the lower layer is kept.

    Returns:
        CLIConfig with values and sources
    """
    config = CLIConfig()
    sources = {key: "default" for key in PARSERS}

    file_config = _read_config_file(get_config_path())
    for key, parse in PARSERS.items():
        if key in file_config and file_config[key] is not None:
            try:
                setattr(config, key, parse(file_config[key]))
                sources[key] = "config file"
            except ValueError as e:
                logger.warning("ignoring invalid config value", key=key, error=str(e))

    for key, env_var in ENV_VARS.items():
        raw = os.environ.get(env_var)
        if raw:
            try:
                setattr(config, key, PARSERS[key](raw))
                sources[key] = "environment"
            except ValueError as e:
                logger.warning("ignoring invalid environment value", variable=env_var, error=str(e))

    config._sources = sources
    return config


def save_config(key: str, value: Any) -> None:
    """Save a config value to the config file.

    Args:
        key: Config key (one of PARSERS)
        value: Value to save

    Raises:
        KeyError: Unknown key
        ValueError: Value does not parse for key
    """
    if key not in PARSERS:
        raise KeyError(key)
    parsed = PARSERS[key](value)

    config_path = get_config_path()
    existing = _read_config_file(config_path)
    existing[key] = parsed

    config_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        yaml.dump(existing, f, default_flow_style=False)


def unset_config(key: str) -> bool:
    """Remove a config value from the config file.

    Args:
        key: Config key to remove

    Returns:
        True if key was removed, False if not found
    """
    config_path = get_config_path()
    existing = _read_config_file(config_path)
    if key not in existing:
        return False

    del existing[key]

    with open(config_path, "w") as f:
        yaml.dump(existing, f, default_flow_style=False)

    return True
