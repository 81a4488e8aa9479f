"""
Live test for the gemini-review workflow.

Runs against the repository named by TEST_REPO_NAME with GITHUB_TOKEN or
TEST_REPO_PAT. The fixture repository is shared state, so run these tests one
at a time:

    pytest tests/integration --run-integration
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from harness.core.config import get_settings
from harness.services.fixture.reconciler import FixtureReconciler
from harness.services.github.client import GitHubClient
from harness.services.scenarios.review import ReviewScenario

pytestmark = pytest.mark.integration


@pytest_asyncio.fixture
async def github() -> AsyncGenerator[GitHubClient, None]:
    async with GitHubClient() as client:
        yield client


@pytest_asyncio.fixture
async def prepared_fixture(github: GitHubClient) -> AsyncGenerator[FixtureReconciler, None]:
    """Clean the fixture, seed it, and clean it again after the test."""
    reconciler = FixtureReconciler(github_client=github, settings=get_settings())
    await reconciler.reconcile_to_empty()
    await reconciler.reconcile_to_baseline()

    yield reconciler

    await reconciler.reconcile_to_empty()


class TestReviewWorkflow:
    """gemini-review posts a summary comment on new pull requests."""

    @pytest.mark.asyncio
    async def test_posts_review_comment(
        self, github: GitHubClient, prepared_fixture: FixtureReconciler
    ) -> None:
        scenario = ReviewScenario(github_client=github, settings=get_settings())

        result = await scenario.run()

        assert result.review_posted, f"No review comment on PR #{result.pr_number}"

    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent(self, prepared_fixture: FixtureReconciler) -> None:
        await prepared_fixture.reconcile_to_empty()

        second = await prepared_fixture.reconcile_to_empty()

        assert second.total == 0
