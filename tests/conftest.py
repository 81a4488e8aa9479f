"""Pytest configuration and fixtures."""

import os
from pathlib import Path

import pytest

# =============================================================================
# Environment Setup (must happen before harness settings are built)
# =============================================================================

os.environ.setdefault("TEST_REPO_NAME", "octo-org/review-sandbox")
os.environ.setdefault("GITHUB_TOKEN", "test-token-for-testing")

from fixtures.clock import FakeClock  # noqa: E402
from fixtures.fake_github import FakeGitHub  # noqa: E402

from harness.core.config import WORKFLOWS_TO_COPY, Settings  # noqa: E402

# =============================================================================
# Pytest-Asyncio Configuration
# =============================================================================

pytest_plugins = ("pytest_asyncio",)


# =============================================================================
# Integration Test Gating
# =============================================================================


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run tests against the live fixture repository",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(reason="needs --run-integration")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# =============================================================================
# Harness Fixtures
# =============================================================================


@pytest.fixture
def workflow_root(tmp_path: Path) -> Path:
    """A source tree holding every workflow file setup copies."""
    for seed in WORKFLOWS_TO_COPY:
        source = tmp_path / seed.source
        source.parent.mkdir(parents=True, exist_ok=True)
        source.write_text(f"name: {source.stem}\non: pull_request\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def settings(workflow_root: Path) -> Settings:
    return Settings(
        test_repo_name="octo-org/review-sandbox",
        GITHUB_TOKEN="test-token",
        poll_interval_seconds=10.0,
        review_timeout_seconds=300.0,
        workflow_source_root=workflow_root,
    )


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
