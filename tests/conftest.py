"""
Shared fixtures for Vigilant tests.

Provides configuration builders, an in-memory GitHub double and a watermark
store rooted in a temporary directory.
"""

from pathlib import Path
from typing import Any

import pytest

from src.config.models import Config, RepoPairConfig
from src.watermarks.store import WatermarkStore
from tests.fixtures.github.fake_host import FakeGitHub
from tests.fixtures.pairs import INITIAL_SINCE, make_pair


@pytest.fixture
def config_data(tmp_path: Path) -> dict[str, Any]:
    """
    Minimal valid configuration mapping.

    Why: Most config and worker tests only vary one or two fields
    What: One repo pair, a one minute interval and a temp state directory
    How: Plain dict as it would come out of a YAML file
    """
    return {
        "poll_interval": 1,
        "state_dir": str(tmp_path / "state"),
        "initial_since": "2024-01-01T00:00:00Z",
        "github": {"token": "test-token"},
        "repos": [
            {
                "source_repo_name": "acme/upstream",
                "file_path": "docs/api.md",
                "target_repo_name": "acme/downstream",
                "pull_request_base_branch": "main",
            }
        ],
    }


@pytest.fixture
def config(config_data: dict[str, Any]) -> Config:
    return Config(**config_data)


@pytest.fixture
def pair() -> RepoPairConfig:
    return make_pair()


@pytest.fixture
def fake_github() -> FakeGitHub:
    """
    In-memory GitHub with the default source and target repositories.

    Why: Notifier tests need a host whose state they can inspect afterwards
    What: FakeGitHub with acme/upstream and acme/downstream (branch main)
    How: Tests add commits and inject failures as needed
    """
    github = FakeGitHub()
    github.add_repo("acme/upstream")
    github.add_repo("acme/downstream")
    return github


@pytest.fixture
def store(tmp_path: Path) -> WatermarkStore:
    return WatermarkStore(tmp_path / "state", initial_since=INITIAL_SINCE)
