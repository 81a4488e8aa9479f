from typing import Any


class HarnessError(Exception):
    """Base exception for the review harness."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(HarnessError):
    """Invalid or missing configuration."""

    pass


class GitHubError(HarnessError):
    """Errors related to GitHub API interactions."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, details)


class GitHubAuthenticationError(GitHubError):
    """GitHub authentication failed."""

    pass


class GitHubRateLimitError(GitHubError):
    """GitHub API rate limit exceeded."""

    def __init__(self, reset_at: int, message: str = "Rate limit exceeded") -> None:
        self.reset_at = reset_at
        super().__init__(message, {"reset_at": reset_at}, status_code=403)


class GitHubNotFoundError(GitHubError):
    """Requested GitHub resource not found."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details, status_code=404)


class FixtureError(HarnessError):
    """The fixture repository is not in the shape an operation expects."""

    pass
