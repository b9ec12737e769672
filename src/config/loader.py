"""Configuration loading.

Loads the configuration from a YAML (``config.yaml`` / ``config.yml``) or
TOML (``config.toml``) file, validates it and keeps the loaded instance.

Search order when no explicit path is given:
1. VIGILANT_CONFIG_PATH environment variable (file or directory)
2. /etc/vigilant/
3. ~/.config/vigilant/
4. Current working directory
"""

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .exceptions import (
    ConfigurationError,
    ConfigurationFileError,
    ConfigurationValidationError,
)
from .models import Config

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "VIGILANT_CONFIG_PATH"
CONFIG_FILENAMES = ("config.yaml", "config.yml", "config.toml")


class ConfigurationLoader:
    """Handles loading and validation of configuration from files or dicts."""

    def load_from_file(self, config_path: str | Path) -> Config:
        """Load configuration from a YAML or TOML file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Loaded and validated configuration

        Raises:
            ConfigurationFileError: If file cannot be read or parsed
            ConfigurationValidationError: If configuration validation fails
        """
        config_path = Path(config_path).expanduser()

        if not config_path.exists():
            raise ConfigurationFileError(
                f"Configuration file not found: {config_path}",
                file_path=str(config_path),
            )

        if not config_path.is_file():
            raise ConfigurationFileError(
                f"Configuration path is not a file: {config_path}",
                file_path=str(config_path),
            )

        config_data = self._read_file(config_path)
        config = self.load_from_dict(config_data)
        logger.info(f"Loaded configuration from {config_path.resolve()}")
        return config

    def _read_file(self, config_path: Path) -> dict[str, Any]:
        try:
            if config_path.suffix == ".toml":
                with open(config_path, "rb") as f:
                    config_data = tomllib.load(f)
            else:
                with open(config_path, encoding="utf-8") as f:
                    config_data = yaml.safe_load(f)
        except (yaml.YAMLError, tomllib.TOMLDecodeError) as e:
            raise ConfigurationFileError(
                f"Failed to parse configuration file {config_path}: {e}",
                file_path=str(config_path),
            ) from e
        except OSError as e:
            raise ConfigurationFileError(
                f"Failed to read configuration file {config_path}: {e}",
                file_path=str(config_path),
            ) from e

        if config_data is None:
            return {}
        if not isinstance(config_data, dict):
            raise ConfigurationFileError(
                f"Configuration file {config_path} must contain a mapping",
                file_path=str(config_path),
            )
        return config_data

    def load_from_dict(self, config_data: dict[str, Any]) -> Config:
        """Load configuration from a dictionary.

        Raises:
            ConfigurationValidationError: If configuration validation fails
        """
        try:
            return Config(**config_data)
        except ValidationError as e:
            raise ConfigurationValidationError(
                f"Configuration validation failed: {e}",
                validation_errors=e.errors(),
            ) from e

    def find_config_file(self) -> Path | None:
        """Find a configuration file in the standard locations.

        Returns:
            Path to found configuration file, or None if not found
        """
        search_dirs: list[Path] = []

        env_path_str = os.getenv(CONFIG_PATH_ENV)
        if env_path_str:
            env_path = Path(env_path_str).expanduser()
            if env_path.is_file():
                return env_path
            search_dirs.append(env_path)

        search_dirs.append(Path("/etc/vigilant"))
        search_dirs.append(Path.home() / ".config" / "vigilant")
        search_dirs.append(Path.cwd())

        for directory in search_dirs:
            for filename in CONFIG_FILENAMES:
                path = directory / filename
                if path.is_file():
                    return path

        return None

    def auto_load(self) -> Config:
        """Load configuration from the first file found in the standard locations.

        Raises:
            ConfigurationFileError: If no configuration file is found
            ConfigurationValidationError: If configuration validation fails
        """
        config_path = self.find_config_file()

        if config_path is None:
            raise ConfigurationFileError(
                "Could not find config.yaml, config.yml or config.toml "
                "in any of the expected locations"
            )

        return self.load_from_file(config_path)


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from an explicit path or by auto-discovery.

    Raises:
        ConfigurationError: If configuration cannot be loaded or is invalid
    """
    loader = ConfigurationLoader()
    try:
        if config_path:
            return loader.load_from_file(config_path)
        return loader.auto_load()
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(f"Failed to load configuration: {e}") from e
