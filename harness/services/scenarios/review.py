"""End-to-end scenario for the gemini-review workflow."""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

from harness.core.config import MOCK_CODE_DIR, MOCK_CODE_PATH, Settings, get_settings
from harness.core.exceptions import GitHubError
from harness.services.github.client import GitHubClient
from harness.services.polling.poller import CommentPoller, PollResult, ReviewCommentMatcher

logger = structlog.get_logger()

UPDATED_CALCULATOR = MOCK_CODE_DIR / "calculator_with_multiply.js"


@dataclass
class ScenarioResult:
    """Outcome of a review scenario run."""

    branch: str
    pr_number: int | None = None
    pr_url: str | None = None
    poll_result: PollResult | None = None

    @property
    def review_posted(self) -> bool:
        return self.poll_result is not None and self.poll_result.succeeded


class ReviewScenario:
    """
    Opens a PR against the fixture and waits for the review comment.

    The PR and its branch are always removed afterwards, whether the wait
    succeeded, timed out or raised.
    """

    def __init__(
        self,
        github_client: GitHubClient | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.github = github_client or GitHubClient()
        self.owner = self.settings.repo_owner
        self.repo = self.settings.repo_name
        self._clock = clock
        self._sleep = sleep

    def make_poller(self, pr_number: int) -> CommentPoller:
        return CommentPoller(
            self.github,
            self.owner,
            self.repo,
            pr_number,
            matcher=ReviewCommentMatcher.from_settings(self.settings),
            timeout_seconds=self.settings.review_timeout_seconds,
            interval_seconds=self.settings.poll_interval_seconds,
            clock=self._clock,
            sleep=self._sleep,
        )

    async def run(self) -> ScenarioResult:
        stamp = int(time.time() * 1000)
        base = self.settings.base_branch
        result = ScenarioResult(branch=f"test-review-pr-{stamp}")

        try:
            logger.info("Creating test PR", branch=result.branch)

            base_sha = await self.github.get_latest_commit_sha(self.owner, self.repo, base)
            logger.info("Resolved base branch", branch=base, sha=base_sha)

            await self.github.create_branch(self.owner, self.repo, result.branch, base_sha)

            await self.github.create_or_update_file(
                self.owner,
                self.repo,
                MOCK_CODE_PATH,
                UPDATED_CALCULATOR.read_text(encoding="utf-8"),
                "Add multiply function to calculator",
                result.branch,
            )

            pr = await self.github.create_pull_request(
                self.owner,
                self.repo,
                head=result.branch,
                base=base,
                title=f"[TEST] Review integration test - {stamp}",
                body="This is an automated test PR for gemini-review integration testing.",
            )
            result.pr_number = pr.number
            result.pr_url = pr.url
            logger.info("PR created", number=pr.number, url=pr.url)

            result.poll_result = await self.make_poller(pr.number).wait()  # type: ignore[arg-type]
            return result
        finally:
            await self._cleanup(result)

    async def _cleanup(self, result: ScenarioResult) -> None:
        if result.pr_number:
            logger.info("Closing PR", number=result.pr_number)
            await self.github.close_pull_request(self.owner, self.repo, result.pr_number)

        try:
            await self.github.delete_branch(self.owner, self.repo, result.branch)
            logger.info("Branch deleted", branch=result.branch)
        except GitHubError as e:
            logger.info("Branch may not exist or already deleted", branch=result.branch, error=str(e))
