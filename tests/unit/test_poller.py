import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fixtures.clock import FakeClock
from fixtures.fake_github import FakeGitHub
from prometheus_client import REGISTRY

from harness.core.config import Settings
from harness.core.exceptions import GitHubError, HarnessError
from harness.services.github.models import Comment
from harness.services.polling.poller import (
    CommentPoller,
    PollState,
    ReviewCommentMatcher,
    wait_for_review_comment,
)

REVIEW_BODY = "## 📋 Review Summary\n\nThe change adds a multiply function."


class TestReviewCommentMatcher:
    """Tests for recognizing the review comment."""

    @pytest.fixture
    def matcher(self) -> ReviewCommentMatcher:
        return ReviewCommentMatcher(author="github-actions", markers=("review summary", "📋"))

    @pytest.mark.parametrize(
        "body",
        [
            "Review Summary: looks good",
            "REVIEW SUMMARY",
            "📋 findings below",
            "Here is my review summary.",
        ],
    )
    def test_matches_markers_case_insensitively(
        self, matcher: ReviewCommentMatcher, body: str
    ) -> None:
        assert matcher.matches(Comment(id=1, body=body, user="github-actions"))

    def test_requires_automation_author(self, matcher: ReviewCommentMatcher) -> None:
        assert not matcher.matches(Comment(id=1, body="Review summary", user="octocat"))
        assert not matcher.matches(Comment(id=2, body="Review summary", user=None))

    def test_requires_marker(self, matcher: ReviewCommentMatcher) -> None:
        assert not matcher.matches(Comment(id=1, body="Workflow started", user="github-actions"))

    def test_from_settings(self, settings: Settings) -> None:
        matcher = ReviewCommentMatcher.from_settings(settings)

        assert matcher.author == "github-actions"
        assert matcher.markers == ("review summary", "📋")


class TestCommentPoller:
    """Tests for bounded polling."""

    def _poller(
        self,
        github: FakeGitHub,
        clock: FakeClock,
        timeout_seconds: float = 300.0,
        interval_seconds: float = 10.0,
    ) -> CommentPoller:
        return CommentPoller(
            github,  # type: ignore[arg-type]
            "octo-org",
            "review-sandbox",
            42,
            matcher=ReviewCommentMatcher("github-actions", ("review summary", "📋")),
            timeout_seconds=timeout_seconds,
            interval_seconds=interval_seconds,
            clock=clock,
            sleep=clock.sleep,
        )

    @pytest.mark.asyncio
    async def test_times_out_without_comments(
        self, fake_github: FakeGitHub, fake_clock: FakeClock
    ) -> None:
        """Test the 300s / 10s budget polls thirty times and then gives up."""
        poller = self._poller(fake_github, fake_clock)

        result = await poller.wait()

        assert result.state is PollState.TIMED_OUT
        assert not result.succeeded
        assert result.attempts == 30
        assert fake_clock.sleeps == [10.0] * 30
        assert result.elapsed_seconds == 300.0
        assert poller.state is PollState.TIMED_OUT

    @pytest.mark.asyncio
    async def test_times_out_with_only_unrelated_comments(
        self, fake_github: FakeGitHub, fake_clock: FakeClock
    ) -> None:
        fake_github.add_comment(42, "Review summary", user="octocat")
        fake_github.add_comment(42, "Deploy preview ready", user="github-actions")
        fake_github.add_comment(42, "📋 checklist", user="coderabbitai[bot]")
        poller = self._poller(fake_github, fake_clock)

        result = await poller.wait()

        assert result.state is PollState.TIMED_OUT
        assert result.comment is None

    @pytest.mark.asyncio
    async def test_succeeds_immediately_when_comment_exists(
        self, fake_github: FakeGitHub, fake_clock: FakeClock
    ) -> None:
        fake_github.add_comment(42, REVIEW_BODY, user="github-actions")
        poller = self._poller(fake_github, fake_clock)

        result = await poller.wait()

        assert result.succeeded
        assert result.attempts == 1
        assert fake_clock.sleeps == []
        assert result.comment is not None
        assert result.comment.body == REVIEW_BODY

    @pytest.mark.asyncio
    async def test_succeeds_when_comment_arrives_later(self, fake_clock: FakeClock) -> None:
        github = MagicMock()
        github.list_comments = AsyncMock(
            side_effect=[
                [],
                [Comment(id=1, body="Gemini is reviewing...", user="github-actions")],
                [
                    Comment(id=1, body="Gemini is reviewing...", user="github-actions"),
                    Comment(id=2, body=REVIEW_BODY, user="github-actions"),
                ],
            ]
        )
        poller = self._poller(github, fake_clock)

        result = await poller.wait()

        assert result.state is PollState.SUCCEEDED
        assert result.attempts == 3
        assert result.elapsed_seconds == 20.0

    @pytest.mark.asyncio
    async def test_scans_every_comment_not_just_newest(
        self, fake_github: FakeGitHub, fake_clock: FakeClock
    ) -> None:
        """Test that a review followed by another bot's comment is still found."""
        fake_github.add_comment(42, REVIEW_BODY, user="github-actions")
        fake_github.add_comment(42, "Coverage report", user="codecov[bot]")
        poller = self._poller(fake_github, fake_clock)

        result = await poller.wait()

        assert result.succeeded

    @pytest.mark.asyncio
    async def test_deadline_shorter_than_interval(
        self, fake_github: FakeGitHub, fake_clock: FakeClock
    ) -> None:
        poller = self._poller(fake_github, fake_clock, timeout_seconds=5.0)

        result = await poller.wait()

        assert result.state is PollState.TIMED_OUT
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_errors_propagate(self, fake_clock: FakeClock) -> None:
        github = MagicMock()
        github.list_comments = AsyncMock(
            side_effect=GitHubError("GitHub API error: 502", status_code=502)
        )
        poller = self._poller(github, fake_clock)

        with pytest.raises(GitHubError):
            await poller.wait()

        assert poller.state is PollState.ERRORED

    @pytest.mark.asyncio
    async def test_errored_outcome_is_recorded(self, fake_clock: FakeClock) -> None:
        labels = {"state": "errored"}
        before = REGISTRY.get_sample_value("harness_poll_outcomes_total", labels) or 0.0
        github = MagicMock()
        github.list_comments = AsyncMock(
            side_effect=GitHubError("GitHub API error: 502", status_code=502)
        )

        with pytest.raises(GitHubError):
            await self._poller(github, fake_clock).wait()

        assert REGISTRY.get_sample_value("harness_poll_outcomes_total", labels) == before + 1

    @pytest.mark.asyncio
    async def test_task_cancellation_marks_cancelled(
        self, fake_github: FakeGitHub, fake_clock: FakeClock
    ) -> None:
        async def sleep_forever(seconds: float) -> None:
            await asyncio.Event().wait()

        poller = CommentPoller(
            fake_github,  # type: ignore[arg-type]
            "owner",
            "repo",
            42,
            matcher=ReviewCommentMatcher(author="github-actions", markers=("review summary",)),
            timeout_seconds=300,
            interval_seconds=10,
            clock=fake_clock,
            sleep=sleep_forever,
        )
        task = asyncio.create_task(poller.wait())
        for _ in range(5):
            await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert poller.state is PollState.CANCELLED

    @pytest.mark.asyncio
    async def test_poller_is_single_use(
        self, fake_github: FakeGitHub, fake_clock: FakeClock
    ) -> None:
        poller = self._poller(fake_github, fake_clock)
        await poller.wait()

        with pytest.raises(HarnessError):
            await poller.wait()

    @pytest.mark.asyncio
    async def test_cancel_interrupts_sleep(self, fake_github: FakeGitHub) -> None:
        """Test that cancel() ends a wait that would otherwise take minutes."""
        poller = CommentPoller(
            fake_github,  # type: ignore[arg-type]
            "octo-org",
            "review-sandbox",
            42,
            matcher=ReviewCommentMatcher("github-actions", ("review summary",)),
            timeout_seconds=600.0,
            interval_seconds=60.0,
        )

        task = asyncio.create_task(poller.wait())
        await asyncio.sleep(0.05)
        poller.cancel()
        result = await asyncio.wait_for(task, timeout=2.0)

        assert result.state is PollState.CANCELLED
        assert result.attempts == 1


class TestWaitForReviewComment:
    """Tests for the boolean convenience wrapper."""

    @pytest.mark.asyncio
    async def test_returns_true_when_review_posted(
        self, fake_github: FakeGitHub, settings: Settings
    ) -> None:
        fake_github.add_comment(42, REVIEW_BODY, user="github-actions")

        assert await wait_for_review_comment(fake_github, 42, settings=settings)  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_returns_false_on_timeout(
        self, fake_github: FakeGitHub, settings: Settings
    ) -> None:
        fast = settings.model_copy(update={"poll_interval_seconds": 0.01})

        found = await wait_for_review_comment(
            fake_github, 42, settings=fast, timeout_seconds=0.05  # type: ignore[arg-type]
        )

        assert found is False

    @pytest.mark.asyncio
    async def test_zero_timeout_is_not_replaced_by_default(
        self, fake_github: FakeGitHub, settings: Settings
    ) -> None:
        fake_github.add_comment(42, REVIEW_BODY, user="github-actions")

        found = await wait_for_review_comment(
            fake_github, 42, settings=settings, timeout_seconds=0  # type: ignore[arg-type]
        )

        assert found is False
