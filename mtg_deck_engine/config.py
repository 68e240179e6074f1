"""Configuration management for the MTG deck engine."""

import json
import logging
import os
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any, Dict, Optional

from .models import DEFAULT_DECK_NAME, DEFAULT_FORMAT, FORMAT_LIMITS


@dataclass
class EngineConfig:
    """Settings shared by the deck commands and the storefront commands."""

    # New deck defaults
    default_deck_name: str = DEFAULT_DECK_NAME
    default_format: str = DEFAULT_FORMAT

    # Storage
    data_dir: str = ""
    default_user: str = "local"

    # Scryfall settings
    scryfall_cache_enabled: bool = True
    scryfall_cache_duration_days: int = 30
    api_retry_attempts: int = 3
    api_timeout_seconds: int = 15

    # Output preferences
    default_output_dir: str = "."
    verbose_output: bool = False
    currency_symbol: str = "€"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _validated_settings(settings: Dict[str, Any]) -> Dict[str, Any]:
    """
    Keep the settings whose names and value types match EngineConfig.

    Args:
        settings: Raw mapping read from the config file

    Returns:
        Settings safe to apply; unknown or mistyped entries are logged and dropped
    """
    logger = logging.getLogger(__name__)
    expected_types = {f.name: type(getattr(EngineConfig, f.name)) for f in fields(EngineConfig)}
    valid = {}

    for key, value in settings.items():
        expected = expected_types.get(key)
        if expected is None:
            logger.debug(f"Ignoring unknown setting {key!r}")
            continue
        # bool is an int subclass, so check it explicitly
        if expected is int and isinstance(value, bool) or not isinstance(value, expected):
            logger.warning(f"Ignoring setting {key!r}: expected {expected.__name__}, got {value!r}")
            continue
        if key == 'default_format' and value not in FORMAT_LIMITS:
            logger.warning(f"Ignoring unknown default format {value!r}")
            continue
        valid[key] = value

    return valid


class ConfigManager:
    """Reads and writes the engine settings file under the user's home directory."""

    DEFAULT_CONFIG_DIR = Path.home() / ".mtg_deck_engine"
    DEFAULT_CONFIG_FILE = "config.json"

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_dir: Directory holding config.json, the data store, the card
                cache and logs (defaults to ~/.mtg_deck_engine)
        """
        self.logger = logging.getLogger(__name__)
        self.config_dir = Path(config_dir) if config_dir else self.DEFAULT_CONFIG_DIR
        self.config_file = self.config_dir / self.DEFAULT_CONFIG_FILE
        self._config = EngineConfig()

        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.load_config()

    def load_config(self) -> EngineConfig:
        """
        Load settings from config.json, creating it with defaults when missing.

        A file that cannot be parsed is kept as config.json.backup and replaced
        by the defaults.

        Returns:
            The loaded configuration
        """
        if not self.config_file.exists():
            self.save_config()
            return self._config

        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                stored = json.load(f)
            if not isinstance(stored, dict):
                raise ValueError("top-level value is not an object")

        except (json.JSONDecodeError, ValueError, OSError) as e:
            self.logger.warning(f"Could not read {self.config_file}, using defaults: {e}")
            self.config_file.rename(self.config_file.with_suffix('.json.backup'))
            self._config = EngineConfig()
            self.save_config()
            return self._config

        for key, value in _validated_settings(stored).items():
            setattr(self._config, key, value)

        return self._config

    def save_config(self) -> None:
        """
        Write the current settings to config.json.

        Raises:
            RuntimeError: If the file cannot be written
        """
        try:
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(asdict(self._config), f, indent=2, sort_keys=True)
        except OSError as e:
            raise RuntimeError(f"Failed to save configuration to {self.config_file}: {e}")

    def get_config(self) -> EngineConfig:
        return self._config

    def update_config(self, **kwargs) -> None:
        """
        Change settings and persist them.

        Args:
            **kwargs: Setting names and their new values

        Raises:
            ValueError: For an unknown setting or an unknown default format
        """
        for key, value in kwargs.items():
            if not hasattr(self._config, key):
                raise ValueError(f"Unknown configuration option: {key}")
            if key == 'default_format' and value not in FORMAT_LIMITS:
                raise ValueError(f"Unknown format: {value}")
            setattr(self._config, key, value)

        self.save_config()

    def reset_to_defaults(self) -> None:
        self._config = EngineConfig()
        self.save_config()

    def get_data_dir(self) -> Path:
        """Directory of the deck, cart and order documents."""
        if self._config.data_dir:
            return Path(self._config.data_dir).expanduser()
        return self.config_dir / "data"

    def get_cache_dir(self) -> Path:
        """Directory of the Scryfall response cache."""
        cache_dir = self.config_dir / "scryfall_cache"
        cache_dir.mkdir(exist_ok=True)
        return cache_dir

    def get_logs_dir(self) -> Path:
        logs_dir = self.config_dir / "logs"
        logs_dir.mkdir(exist_ok=True)
        return logs_dir


def get_default_config() -> EngineConfig:
    """Default settings, without reading or writing config.json."""
    return EngineConfig()


ENV_OVERRIDES = {
    'MTG_DECK_ENGINE_DEFAULT_FORMAT': ('default_format', str),
    'MTG_DECK_ENGINE_DATA_DIR': ('data_dir', str),
    'MTG_DECK_ENGINE_USER': ('default_user', str),
    'MTG_DECK_ENGINE_CACHE_ENABLED': ('scryfall_cache_enabled', _parse_bool),
    'MTG_DECK_ENGINE_RETRY_ATTEMPTS': ('api_retry_attempts', int),
    'MTG_DECK_ENGINE_OUTPUT_DIR': ('default_output_dir', str),
    'MTG_DECK_ENGINE_VERBOSE': ('verbose_output', _parse_bool),
}


def apply_env_overrides(config: EngineConfig) -> EngineConfig:
    """
    Override settings from MTG_DECK_ENGINE_* environment variables.

    Values that cannot be converted are logged and skipped; an unknown
    default format falls back to commander.

    Args:
        config: Settings loaded from config.json

    Returns:
        The same object with the overrides applied
    """
    logger = logging.getLogger(__name__)

    for env_var, (attr_name, converter) in ENV_OVERRIDES.items():
        raw = os.getenv(env_var)
        if raw is None:
            continue
        try:
            setattr(config, attr_name, converter(raw))
        except (ValueError, TypeError):
            logger.warning(f"Ignoring invalid value for {env_var}: {raw!r}")

    if config.default_format not in FORMAT_LIMITS:
        logger.warning(f"Unknown default format {config.default_format!r}, using {DEFAULT_FORMAT}")
        config.default_format = DEFAULT_FORMAT

    return config
