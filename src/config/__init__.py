"""Configuration management for Vigilant.

Example usage:
    from src.config import load_config

    config = load_config()
    for pair in config.repos:
        print(pair.source, pair.file_path, pair.target)
"""

from .exceptions import (
    ConfigurationError,
    ConfigurationFileError,
    ConfigurationValidationError,
    InvalidRepositoryIdentifierError,
)
from .loader import ConfigurationLoader, load_config
from .models import (
    Config,
    GitHubSettings,
    LogLevel,
    RepoIdentifier,
    RepoPairConfig,
    WatermarkScope,
    default_state_dir,
)

__all__ = [
    "Config",
    "ConfigurationError",
    "ConfigurationFileError",
    "ConfigurationLoader",
    "ConfigurationValidationError",
    "GitHubSettings",
    "InvalidRepositoryIdentifierError",
    "LogLevel",
    "RepoIdentifier",
    "RepoPairConfig",
    "WatermarkScope",
    "default_state_dir",
    "load_config",
]
