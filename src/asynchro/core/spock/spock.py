"""Spock - Configuration Manager for asynchro.

Spock manages configuration from JSON files, ``.env`` files and environment
variables, providing defaults for queues and adapters.

Configuration hierarchy:
- queue: Queue defaults
  - throws: Default error policy (true/false/"system"/rule object)
  - message_delimiter: Delimiter used when joining task messages
  - include_error_messages: Include error texts in task messages
- adapters: Adapter defaults
  - events_timeout_ms: Default timeout for promisified events

Environment variables follow the naming convention:
ASYNCHRO__<section>__<key> for nested values
Example: ASYNCHRO__QUEUE__THROWS="system"
         ASYNCHRO__ADAPTERS__EVENTS_TIMEOUT_MS=5000
"""

import json
import logging
import os
from copy import deepcopy
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

SECTIONS = ("queue", "adapters")


class Spock:
    """Configuration manager for queues and adapters.

    Famous quote from Spock in Star Trek:
    "Logic is the beginning of wisdom, not the end."
    """

    ENV_PREFIX = "ASYNCHRO"
    ENV_SEPARATOR = "__"

    def __init__(self, config_path: str | None = None, *, use_dotenv: bool = True):
        """Initialize Spock configuration manager.

        Args:
            config_path: Path to JSON configuration file. If None, only
                        environment variables will be used.
            use_dotenv: Read a ``.env`` file into the environment before
                        looking at environment variables.
        """
        self._config_path = config_path
        self._use_dotenv = use_dotenv
        self._config = self.default_config()
        self._loaded = False
        logger.debug("Spock instance created with config_path=%s", config_path)

    @staticmethod
    def default_config() -> dict[str, Any]:
        """Return a new default config dict each time."""
        return {section: {} for section in SECTIONS}

    def load(self, config: dict[str, Any] | None = None) -> None:
        """Load configuration from JSON file, environment variables, or provided config.

        Args:
            config: Optional config dict to use as base.

        Priority (highest to lowest):
        1. Environment variables (including a ``.env`` file)
        2. Provided config (if any)
        3. JSON file
        4. Default values
        """
        if self._loaded:
            logger.debug("Configuration already loaded, skipping reload")
            return

        self._config = self.default_config()

        if self._config_path:
            self._load_from_json()

        if config is not None:
            self._merge_sections(config, kind="dict")

        if self._use_dotenv:
            load_dotenv(override=False)
        self._load_from_env()

        self._loaded = True
        logger.info("Configuration loaded successfully")
        logger.debug(
            "Final config structure: %s",
            {section: list(values.keys()) for section, values in self._config.items()},
        )

    def _load_from_json(self) -> None:
        """Load configuration from JSON file."""
        config_file = Path(self._config_path)
        if not config_file.exists():
            logger.warning("Config file not found: %s", self._config_path)
            return

        try:
            with open(config_file, encoding="utf-8") as f:
                json_config = json.load(f)
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in config file %s: %s", self._config_path, e)
            raise ValueError(f"Invalid JSON configuration file: {e}") from e

        if not isinstance(json_config, dict):
            raise ValueError("Configuration must be a JSON object")
        self._merge_sections(json_config, kind="JSON object")
        logger.info("Loaded configuration from JSON: %s", self._config_path)

    def _merge_sections(self, config: dict[str, Any], *, kind: str) -> None:
        """Validate and merge known sections of ``config`` into self._config."""
        if not isinstance(config, dict):
            raise ValueError(f"Configuration must be a {kind}")
        for section in SECTIONS:
            if section not in config:
                continue
            if not isinstance(config[section], dict):
                raise ValueError(f"'{section}' section must be a {kind}")
            self._config[section].update(deepcopy(config[section]))

    def _load_from_env(self) -> None:
        """Load configuration from environment variables.

        Environment variables follow the pattern:
        ASYNCHRO__<SECTION>__<KEY>__<SUBKEY>...
        """
        prefix = f"{self.ENV_PREFIX}{self.ENV_SEPARATOR}"

        for env_key, env_value in os.environ.items():
            if not env_key.startswith(prefix):
                continue

            key_path = env_key[len(prefix) :].split(self.ENV_SEPARATOR)

            if len(key_path) < 2:
                logger.warning("Invalid env var format (too short): %s", env_key)
                continue

            section = key_path[0].lower()
            if section not in SECTIONS:
                logger.warning("Invalid section in env var %s: %s", env_key, section)
                continue

            parsed_value = self._parse_env_value(env_value)
            self._set_nested_value(section, key_path[1:], parsed_value)
            logger.debug("Set from env: %s = %s", env_key, parsed_value)

    def _parse_env_value(self, value: str) -> Any:
        """Parse environment variable value with type inference.

        Attempts to parse as JSON first, falls back to string.
        """
        try:
            return json.loads(value)
        except (json.JSONDecodeError, ValueError):
            return value

    def _set_nested_value(self, section: str, path: list[str], value: Any) -> None:
        """Set a value in nested configuration structure.

        Args:
            section: Top-level section ('queue' or 'adapters')
            path: List of keys representing the path to the value
            value: Value to set
        """
        target = self._config[section]
        for key in path[:-1]:
            target = target.setdefault(key.lower(), {})
        target[path[-1].lower()] = value

    def get_config(self, section: str, key: str | None = None, default: Any = None) -> Any:
        """Get a configuration value.

        Args:
            section: Configuration section.
            key: Specific configuration key. If None, returns the entire section.
            default: Default value if key not found.

        Returns:
            Configuration value or default.
        """
        if section not in SECTIONS:
            raise KeyError(f"Unknown configuration section: {section!r}")
        if not self._loaded:
            self.load()

        if key is None:
            return deepcopy(self._config[section])

        return self._config[section].get(key, default)

    def get_queue_config(self, key: str | None = None, default: Any = None) -> Any:
        """Get queue configuration."""
        return self.get_config("queue", key, default)

    def get_adapters_config(self, key: str | None = None, default: Any = None) -> Any:
        """Get adapter configuration."""
        return self.get_config("adapters", key, default)

    def set_config(self, section: str, key: str, value: Any) -> None:
        """Set a configuration value (runtime only, not persisted).

        Args:
            section: Configuration section.
            key: Configuration key
            value: Configuration value
        """
        if section not in SECTIONS:
            raise KeyError(f"Unknown configuration section: {section!r}")
        if not self._loaded:
            self.load()

        self._config[section][key] = value
        logger.debug("Set %s config: %s = %s", section, key, value)

    def get_all_config(self) -> dict[str, Any]:
        """Get complete configuration snapshot.

        Returns:
            Deep copy of entire configuration.
        """
        if not self._loaded:
            self.load()

        return deepcopy(self._config)

    def reload(self) -> None:
        """Reload configuration from sources."""
        self._loaded = False
        self.load()
        logger.info("Configuration reloaded")

    @property
    def config_path(self) -> str | None:
        """Get the configuration file path."""
        return self._config_path

    @property
    def is_loaded(self) -> bool:
        """Check if configuration has been loaded."""
        return self._loaded


ConfigManager = Spock
