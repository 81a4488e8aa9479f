from harness.services.github.client import GitHubClient
from harness.services.github.models import Comment, Issue, PullRequest, RepositoryFile

__all__ = ["Comment", "GitHubClient", "Issue", "PullRequest", "RepositoryFile"]
