"""
Configuration Loader Module

This module loads the optional YAML configuration file, fills in defaults for
the probe, logging and run-summary sections, and merges command line
overrides into validated probe settings.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from rate_limit_probe.core.errors import ConfigurationError
from rate_limit_probe.io.schema import HttpMethod

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/config.yaml"
CONFIG_PATH_ENV = "RATE_PROBE_CONFIG"
LOG_LEVEL_ENV = "RATE_PROBE_LOG_LEVEL"

DEFAULT_PROBE_CONFIG = {
    "method": "GET",
    "max_requests": 1000,
    "concurrency_limit": 15,
    "request_timeout": 30.0,
}

DEFAULT_LOGGING_CONFIG = {
    "level": "INFO",
    "log_dir": "var/logs",
    "file_enabled": True,
}

DEFAULT_SUMMARY_CONFIG = {
    "enabled": False,
    "base_dir": "var/logs/runs",
}


class ProbeSettings(BaseModel):
    """Fully resolved settings for one probe run."""

    url: str
    duration: float = Field(..., description="Time budget in seconds")
    method: HttpMethod = HttpMethod.GET
    max_requests: int = 1000
    concurrency_limit: int = 15
    request_timeout: Optional[float] = 30.0
    quiet: bool = False

    @field_validator("method", mode="before")
    @classmethod
    def _normalize_method(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


class ConfigLoader:
    """Handles loading and managing the YAML configuration file."""

    def __init__(self, config_file_path: str = DEFAULT_CONFIG_PATH):
        """
        Initialize the configuration loader.

        Args:
            config_file_path: Path to the YAML configuration file
        """
        self.config_file_path = Path(config_file_path)
        self.config_data: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML file. A missing file is not an error."""
        try:
            if not self.config_file_path.exists():
                logger.info(f"No configuration file at {self.config_file_path}, using defaults")
                self.config_data = {}
                return

            with open(self.config_file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            if not isinstance(data, dict):
                logger.error(f"Configuration root in {self.config_file_path} must be a mapping")
                self.config_data = {}
                return

            self.config_data = data
            logger.info(f"Successfully loaded configuration from {self.config_file_path}")

        except yaml.YAMLError as e:
            logger.error(f"YAML parsing error in {self.config_file_path}: {str(e)}")
            self.config_data = {}
        except OSError as e:
            logger.error(f"Error reading configuration file: {str(e)}")
            self.config_data = {}

    def reload_config(self) -> bool:
        """
        Reload configuration from file.

        Returns:
            bool: True if the file yielded any configuration
        """
        self._load_config()
        return bool(self.config_data)

    def get_config_value(self, key_path: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Args:
            key_path: Dot-separated path to the configuration value (e.g., 'probe.max_requests')
            default: Default value if key not found

        Returns:
            Any: Configuration value or default
        """
        value: Any = self.config_data
        for key in key_path.split("."):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def _section(self, name: str, defaults: Dict[str, Any]) -> Dict[str, Any]:
        section = self.config_data.get(name) or {}
        if not isinstance(section, dict):
            logger.warning(f"Configuration section '{name}' is not a mapping; using defaults")
            section = {}
        return {**copy.deepcopy(defaults), **section}

    def get_probe_config(self) -> Dict[str, Any]:
        """Get probe configuration merged over defaults."""
        return self._section("probe", DEFAULT_PROBE_CONFIG)

    def get_logging_config(self) -> Dict[str, Any]:
        """Get logging configuration; RATE_PROBE_LOG_LEVEL overrides the level."""
        merged = self._section("logging", DEFAULT_LOGGING_CONFIG)
        env_level = os.getenv(LOG_LEVEL_ENV)
        if env_level:
            merged["level"] = env_level.upper()
        return merged

    def get_summary_config(self) -> Dict[str, Any]:
        """Get run-summary configuration merged over defaults."""
        return self._section("summary", DEFAULT_SUMMARY_CONFIG)

    def validate_configuration(self) -> Dict[str, Any]:
        """
        Validate the configuration and return a report.

        Returns:
            Dict[str, Any]: Validation report with 'valid', 'issues' and 'warnings'
        """
        report = {"valid": True, "issues": [], "warnings": []}

        if not self.config_data:
            report["warnings"].append("Configuration is empty; built-in defaults apply")

        probe = self.get_probe_config()
        for key in ("max_requests", "concurrency_limit"):
            try:
                if int(probe[key]) < 1:
                    report["issues"].append(f"probe.{key} must be >= 1, got {probe[key]}")
            except (TypeError, ValueError):
                report["issues"].append(f"probe.{key} must be an integer, got {probe[key]!r}")

        if str(probe.get("method", "")).upper() not in HttpMethod.__members__:
            report["issues"].append(f"probe.method must be GET or POST, got {probe.get('method')!r}")

        timeout = probe.get("request_timeout")
        if timeout is not None:
            try:
                if float(timeout) <= 0:
                    report["issues"].append("probe.request_timeout must be positive")
            except (TypeError, ValueError):
                report["issues"].append(f"probe.request_timeout must be a number, got {timeout!r}")

        level = str(self.get_logging_config().get("level", "")).upper()
        if level not in logging.getLevelNamesMapping():
            report["warnings"].append(f"Unknown log level '{level}', INFO will be used")

        if report["issues"]:
            report["valid"] = False

        logger.debug(
            f"Configuration validation complete: {len(report['issues'])} issues, {len(report['warnings'])} warnings"
        )
        return report

    def resolve_probe_settings(self, overrides: Mapping[str, Any]) -> ProbeSettings:
        """
        Merge command line overrides over the probe section and validate.

        Overrides with a value of None are ignored so unset flags fall back to
        the configuration file.

        Raises:
            ConfigurationError: If the merged settings are invalid
        """
        merged = self.get_probe_config()
        merged.update({k: v for k, v in overrides.items() if v is not None})

        try:
            settings = ProbeSettings(**merged)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid probe settings: {e}") from e

        if settings.concurrency_limit < 1:
            raise ConfigurationError(
                f"concurrency limit must be >= 1, got {settings.concurrency_limit}"
            )
        if settings.max_requests < 1:
            raise ConfigurationError(f"max requests must be >= 1, got {settings.max_requests}")
        if settings.duration < 0:
            raise ConfigurationError(f"duration must be >= 0, got {settings.duration}")
        if settings.request_timeout is not None and settings.request_timeout <= 0:
            raise ConfigurationError(
                f"request timeout must be positive, got {settings.request_timeout}"
            )
        return settings


def create_config_loader(config_file_path: Optional[str] = None) -> ConfigLoader:
    """
    Factory function to create a ConfigLoader instance.

    Args:
        config_file_path: Optional custom path; falls back to RATE_PROBE_CONFIG, then the default

    Returns:
        ConfigLoader: Configured loader instance
    """
    if config_file_path is None:
        config_file_path = os.getenv(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH

    return ConfigLoader(config_file_path)
