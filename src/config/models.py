"""Pydantic configuration models for Vigilant.

The configuration hierarchy is:
- Config: root settings (poll interval, state directory, watermark scope)
- GitHubSettings: API endpoint and credential
- RepoPairConfig: one watched (source file -> target repository) pair

String values may reference environment variables as ``${VAR_NAME}`` or
``${VAR_NAME:default_value}``.
"""

import os
import re
import sys
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .exceptions import InvalidRepositoryIdentifierError

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]*))?\}")


class LogLevel(str, Enum):
    """Supported logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class WatermarkScope(str, Enum):
    """Granularity of the "last checked" watermark."""

    PER_PAIR = "per_pair"
    GLOBAL = "global"


@dataclass(frozen=True)
class RepoIdentifier:
    """A GitHub repository addressed as ``owner/name``."""

    owner: str
    name: str

    @classmethod
    def parse(cls, full_name: str) -> "RepoIdentifier":
        """Split ``owner/name``.

        Raises:
            InvalidRepositoryIdentifierError: If the value is not exactly two
                non-empty segments
        """
        parts = full_name.strip().split("/")
        if len(parts) != 2 or not all(part.strip() for part in parts):
            raise InvalidRepositoryIdentifierError(full_name)
        return cls(owner=parts[0].strip(), name=parts[1].strip())

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}"


def default_state_dir() -> Path:
    """Per-OS cache directory holding watermark files."""
    home = Path.home()
    if sys.platform == "darwin":
        return home / "Library" / "Caches" / "vigilant"
    xdg_cache = os.getenv("XDG_CACHE_HOME")
    if xdg_cache:
        return Path(xdg_cache) / "vigilant"
    return home / ".cache" / "vigilant"


class BaseConfigModel(BaseModel):
    """Base configuration model with environment variable substitution."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def substitute_env_vars(cls, values: Any) -> Any:
        """Substitute environment variables in string values.

        Raises:
            ValueError: If a required environment variable is missing
        """

        def replacer(match: re.Match[str]) -> str:
            var_name, default_value = match.group(1), match.group(2)
            env_value = os.getenv(var_name)
            if env_value is not None:
                return env_value
            if default_value is not None:
                return default_value
            raise ValueError(f"Required environment variable '{var_name}' not found")

        def substitute_value(value: Any) -> Any:
            if isinstance(value, str):
                return _ENV_VAR_PATTERN.sub(replacer, value)
            elif isinstance(value, dict):
                return {k: substitute_value(v) for k, v in value.items()}
            elif isinstance(value, list):
                return [substitute_value(item) for item in value]
            return value

        if not isinstance(values, dict):
            return values
        return {key: substitute_value(value) for key, value in values.items()}


class GitHubSettings(BaseConfigModel):
    """GitHub API settings."""

    token: str | None = Field(
        default=None,
        description="API token; falls back to the GITHUB_TOKEN environment variable",
        repr=False,
    )

    base_url: str = Field(
        default="https://api.github.com", description="GitHub REST API base URL"
    )

    timeout: int = Field(
        default=30, ge=1, le=300, description="Request timeout in seconds"
    )

    rate_limit_buffer: int = Field(
        default=100,
        ge=0,
        description="Requests kept in reserve before refusing to call the API",
    )

    @field_validator("token")
    @classmethod
    def blank_token_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("https://", "http://")):
            raise ValueError("GitHub base_url must be an http(s) URL")
        return v


class RepoPairConfig(BaseConfigModel):
    """One watched file and the repository notified about its changes."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    source_repo_name: str = Field(description="Source repository as owner/name")

    file_path: str = Field(description="Path of the watched file in the source")

    target_repo_name: str = Field(description="Target repository as owner/name")

    pull_request_base_branch: str = Field(
        description="Branch the notification pull request targets"
    )

    @field_validator(
        "source_repo_name",
        "file_path",
        "target_repo_name",
        "pull_request_base_branch",
    )
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("source_repo_name", "target_repo_name")
    @classmethod
    def validate_repo_name(cls, v: str) -> str:
        RepoIdentifier.parse(v)
        return v

    @field_validator("file_path")
    @classmethod
    def strip_leading_slash(cls, v: str) -> str:
        path = v.lstrip("/")
        if not path:
            raise ValueError("must name a file")
        return path

    @property
    def source(self) -> RepoIdentifier:
        return RepoIdentifier.parse(self.source_repo_name)

    @property
    def target(self) -> RepoIdentifier:
        return RepoIdentifier.parse(self.target_repo_name)

    @property
    def key(self) -> str:
        """Stable identity used to address this pair's watermark."""
        return (
            f"{self.source_repo_name}:{self.file_path}"
            f"->{self.target_repo_name}@{self.pull_request_base_branch}"
        )

    def __str__(self) -> str:
        return (
            f"{self.source_repo_name}:{self.file_path} -> "
            f"{self.target_repo_name}@{self.pull_request_base_branch}"
        )


class Config(BaseConfigModel):
    """Root configuration."""

    poll_interval: int = Field(
        gt=0, description="Minutes between scheduled repository checks"
    )

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")

    watermark_scope: WatermarkScope = Field(
        default=WatermarkScope.PER_PAIR,
        description="One watermark per pair, or one shared by all pairs",
    )

    initial_since: datetime | None = Field(
        default=None,
        description="Watermark used when none has been recorded yet (default: now)",
    )

    state_dir: Path | None = Field(
        default=None, description="Directory holding watermark files"
    )

    check_on_startup: bool = Field(
        default=False, description="Run one cycle immediately at startup"
    )

    github: GitHubSettings = Field(default_factory=GitHubSettings)

    repos: list[RepoPairConfig] = Field(description="Watched repository pairs")

    @field_validator("repos")
    @classmethod
    def validate_repos_not_empty(cls, v: list[RepoPairConfig]) -> list[RepoPairConfig]:
        if not v:
            raise ValueError("at least one repo configuration is required")
        return v

    @field_validator("initial_since")
    @classmethod
    def normalize_initial_since(cls, v: datetime | None) -> datetime | None:
        if v is None:
            return None
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    @field_validator("state_dir")
    @classmethod
    def expand_state_dir(cls, v: Path | None) -> Path | None:
        return v.expanduser() if v is not None else None

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval * 60.0

    @property
    def resolved_state_dir(self) -> Path:
        return self.state_dir or default_state_dir()
