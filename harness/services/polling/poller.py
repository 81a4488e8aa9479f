"""Bounded fixed-interval polling for an automation-authored comment."""

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from enum import Enum

import structlog

from harness.core.config import Settings, get_settings
from harness.core.exceptions import HarnessError
from harness.core.metrics import record_poll_attempt, record_poll_outcome
from harness.services.github.client import GitHubClient
from harness.services.github.models import Comment

logger = structlog.get_logger()


class PollState(str, Enum):
    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    ERRORED = "errored"


@dataclass
class PollResult:
    """Terminal outcome of a poll."""

    state: PollState
    attempts: int
    elapsed_seconds: float
    comment: Comment | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is PollState.SUCCEEDED


class ReviewCommentMatcher:
    """
    Recognizes the review summary comment posted by the automation.

    A comment qualifies when its author is the automation's login and its body
    contains any marker, compared case-insensitively. This is a heuristic on
    free text, not a format the workflow guarantees.
    """

    def __init__(self, author: str, markers: Iterable[str]) -> None:
        self.author = author
        self.markers = tuple(marker.lower() for marker in markers)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReviewCommentMatcher":
        return cls(author=settings.review_bot_login, markers=settings.review_markers)

    def matches(self, comment: Comment) -> bool:
        if comment.user != self.author:
            return False
        body = comment.body.lower()
        return any(marker in body for marker in self.markers)


class CommentPoller:
    """
    Waits for a qualifying comment on an issue or pull request.

    Each attempt lists every comment on the target and scans all of them, since
    other bots may comment in between polls. Between attempts the poller sleeps
    a fixed interval. The wait ends on a match, at the deadline, or when
    cancel() is called. Errors from GitHub propagate to the caller.

    A poller is single-use: once it reaches a terminal state it cannot be
    waited on again.
    """

    def __init__(
        self,
        github_client: GitHubClient,
        owner: str,
        repo: str,
        issue_number: int,
        matcher: ReviewCommentMatcher,
        timeout_seconds: float,
        interval_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self.github = github_client
        self.owner = owner
        self.repo = repo
        self.issue_number = issue_number
        self.matcher = matcher
        self.timeout_seconds = timeout_seconds
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._sleep = sleep or self._interruptible_sleep
        self._cancelled = asyncio.Event()
        self._state = PollState.WAITING
        self._started = False
        self._attempts = 0

    @property
    def state(self) -> PollState:
        return self._state

    def cancel(self) -> None:
        """Stop waiting at the next suspension point."""
        self._cancelled.set()

    async def _interruptible_sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def _finish(self, state: PollState, start: float, comment: Comment | None = None) -> PollResult:
        self._state = state
        elapsed = self._clock() - start
        record_poll_outcome(state.value, elapsed)
        return PollResult(
            state=state, attempts=self._attempts, elapsed_seconds=elapsed, comment=comment
        )

    async def wait(self) -> PollResult:
        if self._started:
            raise HarnessError(
                "Poller has already run",
                {"issue_number": self.issue_number, "state": self._state.value},
            )
        self._started = True

        start = self._clock()

        logger.info(
            "Polling for review comment",
            issue_number=self.issue_number,
            timeout_seconds=self.timeout_seconds,
            interval_seconds=self.interval_seconds,
        )

        try:
            return await self._poll(start)
        except asyncio.CancelledError:
            logger.info("Polling task cancelled", issue_number=self.issue_number)
            self._finish(PollState.CANCELLED, start)
            raise
        except Exception as e:
            logger.error("Polling failed", issue_number=self.issue_number, error=str(e))
            self._finish(PollState.ERRORED, start)
            raise

    async def _poll(self, start: float) -> PollResult:
        deadline = start + self.timeout_seconds

        while self._clock() < deadline:
            if self._cancelled.is_set():
                break

            comments = await self.github.list_comments(self.owner, self.repo, self.issue_number)

            self._attempts += 1
            record_poll_attempt()
            logger.info(
                "Fetched comments",
                elapsed_seconds=int(self._clock() - start),
                count=len(comments),
            )

            for comment in comments:
                if self.matcher.matches(comment):
                    logger.info(
                        "Found review comment",
                        user=comment.user,
                        preview=comment.body[:100],
                    )
                    return self._finish(PollState.SUCCEEDED, start, comment)

                logger.debug("Skipping comment", user=comment.user, comment_id=comment.id)

            await self._sleep(self.interval_seconds)

        if self._cancelled.is_set():
            logger.info(
                "Polling cancelled", issue_number=self.issue_number, attempts=self._attempts
            )
            return self._finish(PollState.CANCELLED, start)

        logger.warning(
            "Timeout waiting for review comment",
            issue_number=self.issue_number,
            attempts=self._attempts,
        )
        return self._finish(PollState.TIMED_OUT, start)


async def wait_for_review_comment(
    github_client: GitHubClient,
    pr_number: int,
    settings: Settings | None = None,
    timeout_seconds: float | None = None,
) -> bool:
    """Poll a pull request for the review comment; True if it appeared in time."""
    settings = settings or get_settings()
    poller = CommentPoller(
        github_client,
        settings.repo_owner,
        settings.repo_name,
        pr_number,
        matcher=ReviewCommentMatcher.from_settings(settings),
        timeout_seconds=(
            timeout_seconds if timeout_seconds is not None else settings.review_timeout_seconds
        ),
        interval_seconds=settings.poll_interval_seconds,
    )
    result = await poller.wait()
    return result.succeeded
