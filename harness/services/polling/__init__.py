from harness.services.polling.poller import (
    CommentPoller,
    PollResult,
    PollState,
    ReviewCommentMatcher,
    wait_for_review_comment,
)

__all__ = [
    "CommentPoller",
    "PollResult",
    "PollState",
    "ReviewCommentMatcher",
    "wait_for_review_comment",
]
