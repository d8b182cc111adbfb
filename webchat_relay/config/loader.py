"""
Configuration loader for webchat-relay.

This module loads the optional YAML configuration file, validates it with
Pydantic, and writes it back for `config set`.

Functions:
    load_config: Load and validate config.yaml (defaults when absent)
    save_config: Persist an AppConfig to YAML
    set_config_value: Apply one `config set KEY VALUE` change
"""

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from webchat_relay.exceptions import ConfigFileNotFoundError, ConfigValidationError

from ..storage.layout import get_config_path
from .schema import AppConfig

logger = logging.getLogger(__name__)

# CLI keys accepted by `config set`, mapped to AppConfig field names
SETTABLE_KEYS = {
    "destination": "default_destination",
    "timeout": "default_timeout_ms",
    "headless": "headless",
}


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """
    Load config.yaml and validate it.

    When no path is given the default location is used, and a missing file
    simply yields the defaults. An explicitly requested file must exist.

    Args:
        config_path: Optional path to a YAML config file

    Returns:
        Validated AppConfig

    Raises:
        ConfigFileNotFoundError: If an explicit config_path doesn't exist
        ConfigValidationError: If YAML is invalid or validation fails

    Example:
        >>> config = load_config()
        >>> config.default_destination
        'chatgpt'

    Security:
        Uses yaml.safe_load() to prevent code injection
    """
    explicit = config_path is not None
    path = Path(config_path) if explicit else get_config_path()

    if not path.exists():
        if explicit:
            raise ConfigFileNotFoundError(f"Configuration file not found: {path}")
        logger.debug(f"No config file at {path}, using defaults")
        return AppConfig()

    try:
        with path.open(encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML syntax in {path}: {e}") from e
    except OSError as e:
        raise ConfigValidationError(
            f"Failed to read configuration file {path}: {e}"
        ) from e

    # Empty file means "all defaults"
    if raw_config is None:
        return AppConfig()

    if not isinstance(raw_config, dict):
        raise ConfigValidationError(
            f"Configuration file {path} must contain a mapping at the top level"
        )

    try:
        config = AppConfig.model_validate(raw_config)
    except ValidationError as e:
        error_messages = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            error_messages.append(f"  - {loc}: {msg}")

        raise ConfigValidationError(
            f"Configuration validation failed in {path}:\n" + "\n".join(error_messages)
        ) from e

    logger.debug(f"Loaded config from {path}")
    return config


def save_config(config: AppConfig, config_path: str | Path | None = None) -> Path:
    """
    Write config to YAML, creating parent directories as needed.

    Returns:
        Path the config was written to
    """
    path = Path(config_path) if config_path is not None else get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    with path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(
            config.model_dump(mode="json"), f, sort_keys=False, allow_unicode=True
        )

    logger.info(f"Saved config to {path}")
    return path


def set_config_value(config: AppConfig, key: str, value: str) -> AppConfig:
    """
    Return a copy of config with one user-facing key changed.

    Values are validated through the same Pydantic model as the file.

    Raises:
        ConfigValidationError: If key is unknown or value fails validation

    Example:
        >>> set_config_value(AppConfig(), "timeout", "120000").default_timeout_ms
        120000
    """
    field = SETTABLE_KEYS.get(key)
    if field is None:
        raise ConfigValidationError(
            f"Unknown config key: {key}. Available keys: {', '.join(SETTABLE_KEYS)}"
        )

    data = config.model_dump()
    if field == "headless":
        lowered = value.strip().lower()
        if lowered not in ("true", "false"):
            raise ConfigValidationError("headless must be 'true' or 'false'")
        data[field] = lowered == "true"
    else:
        data[field] = value

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        messages = "; ".join(err["msg"] for err in e.errors())
        raise ConfigValidationError(f"Invalid value for {key}: {messages}") from e
