"""
Configuration manager for Feed Collector.
Handles loading and validation of configuration settings.
"""
import copy
import json
import logging
import os
from datetime import timedelta
from typing import Dict, Any, Optional
from json.decoder import JSONDecodeError

from dotenv import find_dotenv, load_dotenv

from .utils.helpers import parse_duration
from .utils.proxy_utils import validate_proxy_settings

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = {
    "subscriptions": {
        "opml_path": "feeds.opml"
    },
    "storage": {
        "db_path": "data/feeds.db",
        "prune_max_age": "30d"
    },
    "networking": {
        "timeout_seconds": 30,
        "user_agent": None,
        "proxy": {
            "enabled": False,
            "host": "localhost",
            "port": 8081,
            "protocol": "http"
        }
    },
    "enrichment": {
        "enabled": False,
        "base_url": "http://localhost:11434",
        "model": "phi3:medium",
        "cutoff": "2d",
        "timeout_seconds": 60
    },
    "output": {
        "mode": "html",
        "dir": ".",
        "publish_cutoff": "2d",
        "timezone": "UTC"
    },
    "schedule": {
        "refresh_interval": "1h"
    },
    "server": {
        "host": "",
        "port": 8173
    },
    "logging": {
        "level": "INFO",
        "log_dir": "./logs",
        "backup_count": 7
    }
}

# Environment variable -> dotted settings path
ENV_OVERRIDES = {
    "FEED_COLLECTOR_LOG_LEVEL": "logging.level",
    "FEED_COLLECTOR_DB_PATH": "storage.db_path",
    "FEED_COLLECTOR_OPML_PATH": "subscriptions.opml_path",
    "FEED_COLLECTOR_OLLAMA_URL": "enrichment.base_url",
}

DURATION_SETTINGS = (
    "storage.prune_max_age",
    "enrichment.cutoff",
    "output.publish_cutoff",
    "schedule.refresh_interval",
)


def merge_dicts(source: Dict[str, Any], default: Dict[str, Any]) -> None:
    """Recursively merges default dict into source dict."""
    for key, value in default.items():
        if key not in source:
            source[key] = copy.deepcopy(value)
        elif isinstance(value, dict) and isinstance(source[key], dict):
            merge_dicts(source[key], value)
        # No else: existing values in source take precedence


class ConfigManager:
    """
    Manages configuration loading, defaults and validation.
    """

    def __init__(self, settings_path: Optional[str] = None, env_file: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            settings_path: Path to the settings file (settings.json). When None,
                only defaults and environment overrides apply.
            env_file: Optional .env file to load before reading overrides

        Raises:
            FileNotFoundError: If settings_path is given but does not exist
            JSONDecodeError: If the settings file is not valid JSON
            TypeError, ValueError: If a setting has the wrong type or value
        """
        self.settings_path = settings_path
        self.settings: Dict[str, Any] = {}

        logger.debug(f"ConfigManager initialized with settings: {settings_path}")

        load_dotenv(env_file or find_dotenv(usecwd=True))
        self._load_settings()

    def _load_settings(self):
        """Load, merge and validate the settings."""
        if self.settings_path:
            self.settings = self._load_json_file(self.settings_path)
        else:
            logger.info("No settings file given, using defaults")

        if not isinstance(self.settings, dict):
            raise TypeError("Settings file must contain a JSON object")

        merge_dicts(self.settings, DEFAULT_SETTINGS)
        self._apply_env_overrides()
        self._validate_settings()

        logger.info("Settings configuration validated")

    def _load_json_file(self, file_path: str) -> Dict[str, Any]:
        """
        Load a JSON configuration file.

        Args:
            file_path: Path to JSON file

        Returns:
            Configuration dictionary

        Raises:
            FileNotFoundError: If the file does not exist.
            json.JSONDecodeError: If the file contains invalid JSON.
        """
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                config = json.load(f)

            logger.info(f"Loaded settings from {file_path}")
            return config

        except FileNotFoundError:
            logger.critical(f"Settings file not found: {file_path}")
            raise
        except JSONDecodeError as e:
            logger.error(f"Invalid JSON in settings file '{file_path}': {e}")
            raise

    def _apply_env_overrides(self):
        for env_var, key_path in ENV_OVERRIDES.items():
            value = os.environ.get(env_var)
            if value:
                self.set_config_value(key_path, value)
                logger.debug(f"Applied {env_var} override to '{key_path}'")

    def _validate_settings(self):
        """Validate specific key values within settings."""
        for section, value in self.settings.items():
            if section in DEFAULT_SETTINGS and not isinstance(value, dict):
                raise TypeError(f"Invalid type for configuration section '{section}'. Expected dict")

        for key_path in ("subscriptions.opml_path", "storage.db_path", "output.dir"):
            value = self.get_config_value(key_path)
            if not value or not isinstance(value, str):
                raise TypeError(f"Missing or invalid type for '{key_path}'. Expected non-empty string.")

        for key_path in ("networking.timeout_seconds", "enrichment.timeout_seconds"):
            value = self.get_config_value(key_path)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise TypeError(f"Invalid value for '{key_path}'. Expected a positive number.")

        if not isinstance(self.get_config_value("enrichment.enabled"), bool):
            raise TypeError("Invalid type for 'enrichment.enabled'. Expected boolean.")

        if not isinstance(self.get_config_value("server.host"), str):
            raise TypeError("Invalid type for 'server.host'. Expected string.")

        port = self.get_config_value("server.port")
        if isinstance(port, bool) or not isinstance(port, int):
            raise TypeError("Invalid type for 'server.port'. Expected integer.")
        if not 1 <= port <= 65535:
            raise ValueError("Invalid value for 'server.port'. Expected 1-65535.")

        if self.get_config_value("output.mode") not in ("html", "markdown"):
            raise ValueError("Invalid value for 'output.mode'. Expected 'html' or 'markdown'.")

        for key_path in DURATION_SETTINGS:
            duration = self.get_duration(key_path)
            if duration <= timedelta(0):
                raise ValueError(f"Invalid value for '{key_path}'. Expected a positive duration.")

        is_valid, error = validate_proxy_settings(self.get_config_value("networking.proxy"))
        if not is_valid:
            raise ValueError(f"Invalid 'networking.proxy' settings: {error}")

    def get_config_value(self, key_path: str, default=None):
        """
        Get configuration value using dot notation.

        Args:
            key_path: Dot-separated path to configuration value (e.g., "storage.db_path")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.settings

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set_config_value(self, key_path: str, value) -> None:
        """Set a configuration value using dot notation, creating sections as needed."""
        keys = key_path.split('.')
        target = self.settings
        for key in keys[:-1]:
            target = target.setdefault(key, {})
        target[keys[-1]] = value

    def get_duration(self, key_path: str) -> timedelta:
        """
        Get a duration setting such as "2d" as a timedelta.

        Raises:
            ValueError: If the value is not a valid duration
        """
        value = self.get_config_value(key_path)
        try:
            return parse_duration(value)
        except ValueError as e:
            raise ValueError(f"Invalid duration for '{key_path}': {e}") from e
