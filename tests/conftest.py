"""Shared fixtures: a temp-rooted config, a sample item and mocked collaborators."""

import os
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from hypothesis import settings

from factory.config import Config
from factory.interfaces import CodeHost, Comment, Implementer, Item, TrackerClient, WorkspaceClient
from factory.logger import clear_item_context

# HYPOTHESIS_PROFILE=ci runs more examples
settings.register_profile("ci", max_examples=100, deadline=None)
settings.register_profile("dev", max_examples=50, deadline=None)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "dev"))

MARKERS = {
    "unit": "fast tests with no external processes",
    "integration": "tests that run real git or child processes",
    "hypothesis": "property-based tests",
}


def pytest_configure(config):
    for name, description in MARKERS.items():
        config.addinivalue_line("markers", f"{name}: {description}")


@pytest.fixture(autouse=True)
def reset_item_context():
    """Keep the logging item context from leaking between tests."""
    yield
    clear_item_context()


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Fixture providing a REST-backed config rooted in a temp directory."""
    return Config(
        config_dir=tmp_path,
        repo_clone_url="https://github.com/acme/widgets.git",
        github_owner="acme",
        github_repo="widgets",
        jira_use_cli=False,
        jira_base_url="https://acme.atlassian.net",
        jira_email="bot@acme.test",
        jira_api_token="jira-secret-token",
        github_token="ghp_secrettoken",
    )


@pytest.fixture
def sample_item() -> Item:
    """Fixture providing an eligible item with one comment."""
    return Item(
        key="PROJ-1",
        title="Add login rate limiting",
        description="Limit login attempts.\n\nAcceptance Criteria:\n- 5 attempts per minute",
        type="Story",
        priority="High",
        status="To Do",
        acceptance_criteria="- 5 attempts per minute",
        comments=(Comment(author="Dana", created="2026-01-02", body="Use the existing cache."),),
    )


@pytest.fixture
def tracker(sample_item: Item) -> MagicMock:
    """Fixture for a mocked tracker returning sample_item."""
    mock = MagicMock(spec=TrackerClient)
    mock.fetch_item.return_value = sample_item
    mock.fetch_assigned.return_value = [sample_item]
    return mock


@pytest.fixture
def workspace(tmp_path: Path) -> MagicMock:
    """Fixture for a mocked workspace with uncommitted changes."""
    mock = MagicMock(spec=WorkspaceClient)
    mock.path = tmp_path / "workspace"
    mock.create_or_checkout_branch.return_value = "feature/PROJ-1-add-login-rate-limiting"
    mock.has_uncommitted_changes.return_value = True
    return mock


@pytest.fixture
def implementer() -> MagicMock:
    return MagicMock(spec=Implementer)


@pytest.fixture
def code_host() -> MagicMock:
    mock = MagicMock(spec=CodeHost)
    mock.open_change_request.return_value = "https://github.com/acme/widgets/pull/7"
    return mock


@pytest.fixture
def mock_subprocess_run():
    """Patch subprocess.run globally so no real CLI is invoked."""
    with patch("subprocess.run") as mock_run:
        yield mock_run

