"""GitHub API client with metrics instrumentation."""

import base64
import time
from urllib.parse import quote
from typing import Any

import httpx
import structlog

from harness.core.config import COMMANDS_DIR, WORKFLOWS_DIR, get_settings
from harness.core.exceptions import (
    FixtureError,
    GitHubAuthenticationError,
    GitHubError,
    GitHubNotFoundError,
    GitHubRateLimitError,
)
from harness.core.metrics import record_github_api_call
from harness.services.github.models import (
    Branch,
    Comment,
    CreatedResource,
    Issue,
    ItemState,
    PullRequest,
    RepositoryFile,
)

logger = structlog.get_logger()

PER_PAGE = 100


def _escape(value: str) -> str:
    """Percent-encode a ref name or content path for use in a URL path."""
    return quote(value, safe="/")


class GitHubClient:
    """Client for interacting with GitHub API."""

    def __init__(
        self,
        token: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if token is None or base_url is None:
            settings = get_settings()
            token = token or settings.github_token.get_secret_value()  # type: ignore[union-attr]
            base_url = base_url or settings.github_api_url
        self.token = token
        self.base_url = base_url
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Accept": "application/vnd.github.v3+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                },
                timeout=30.0,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _extract_endpoint_name(self, endpoint: str) -> str:
        """
        Extract a normalized endpoint name for metrics.

        Converts:
            /repos/owner/repo/pulls/123 -> pulls
            /repos/owner/repo/issues/123/comments -> issues_comments
            /repos/owner/repo/git/ref/heads/feature -> git_ref
            /repos/owner/repo/contents/src/app.js -> contents
        """
        parts = endpoint.strip("/").split("/")

        # Skip 'repos', owner, repo parts
        if len(parts) >= 3 and parts[0] == "repos":
            parts = parts[3:]

        # Anything after a content path or ref name is user data, not an endpoint
        if parts and parts[0] == "contents":
            parts = parts[:1]
        elif parts and parts[0] == "git":
            parts = parts[:2]

        parts = [p for p in parts if not p.isdigit()]

        return "_".join(parts) if parts else "unknown"

    async def _request(
        self,
        method: str,
        endpoint: str,
        **kwargs: Any,
    ) -> dict[str, Any] | list[Any] | None:
        """Make an authenticated request to GitHub API."""
        client = await self._get_client()
        endpoint_name = self._extract_endpoint_name(endpoint)

        logger.debug("GitHub API request", method=method, endpoint=endpoint)

        start_time = time.perf_counter()
        status_code = 0
        rate_limit_remaining = None
        rate_limit_reset = None

        try:
            response = await client.request(method, endpoint, **kwargs)
            status_code = response.status_code

            # Extract rate limit headers
            rate_limit_remaining = int(response.headers.get("X-RateLimit-Remaining", 0))
            rate_limit_reset = int(response.headers.get("X-RateLimit-Reset", 0))

            if response.status_code == 401:
                raise GitHubAuthenticationError("Invalid GitHub token", status_code=401)

            if response.status_code == 403:
                if "rate limit" in response.text.lower():
                    raise GitHubRateLimitError(reset_at=rate_limit_reset)
                raise GitHubAuthenticationError("Access forbidden", status_code=403)

            if response.status_code == 404:
                raise GitHubNotFoundError(f"Resource not found: {endpoint}")

            if response.status_code >= 400:
                raise GitHubError(
                    f"GitHub API error: {response.status_code}",
                    details={"response": response.text},
                    status_code=response.status_code,
                )

            if response.status_code == 204 or not response.content:
                return None

            result: dict[str, Any] | list[Any] = response.json()
            return result

        finally:
            # Always record metrics
            duration_seconds = time.perf_counter() - start_time
            record_github_api_call(
                endpoint=endpoint_name,
                method=method,
                status_code=status_code,
                duration_seconds=duration_seconds,
                rate_limit_remaining=rate_limit_remaining,
                rate_limit_reset=rate_limit_reset,
            )

    async def _request_dict(self, method: str, endpoint: str, **kwargs: Any) -> dict[str, Any]:
        data = await self._request(method, endpoint, **kwargs)
        if not isinstance(data, dict):
            raise GitHubError("Unexpected response format")
        return data

    async def _paginate(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch a list endpoint page by page until a short page is returned."""
        items: list[dict[str, Any]] = []
        page = 0
        while True:
            page += 1
            data = await self._request(
                "GET",
                endpoint,
                params={**(params or {}), "per_page": PER_PAGE, "page": page},
            )

            if not isinstance(data, list):
                raise GitHubError("Unexpected response format")

            items.extend(item for item in data if isinstance(item, dict))

            if len(data) < PER_PAGE:
                return items

    # -------------------------------------------------------------------------
    # Pull requests
    # -------------------------------------------------------------------------

    async def create_pull_request(
        self,
        owner: str,
        repo: str,
        head: str,
        base: str,
        title: str,
        body: str | None = None,
    ) -> CreatedResource:
        """Open a pull request from head into base."""
        data = await self._request_dict(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            json={"head": head, "base": base, "title": title, "body": body},
        )

        logger.info("Pull request created", number=data["number"], head=head, base=base)

        return CreatedResource(number=data["number"], url=data["html_url"])

    async def list_pull_requests(
        self,
        owner: str,
        repo: str,
        state: ItemState = "open",
    ) -> list[PullRequest]:
        data = await self._paginate(f"/repos/{owner}/{repo}/pulls", params={"state": state})

        return [
            PullRequest(
                number=pr["number"],
                title=pr["title"],
                url=pr["html_url"],
                head=pr["head"]["ref"],
            )
            for pr in data
        ]

    async def close_pull_request(self, owner: str, repo: str, pr_number: int) -> None:
        await self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/pulls/{pr_number}",
            json={"state": "closed"},
        )

    # -------------------------------------------------------------------------
    # Issues and comments
    # -------------------------------------------------------------------------

    async def create_issue(
        self,
        owner: str,
        repo: str,
        title: str,
        body: str | None = None,
    ) -> CreatedResource:
        data = await self._request_dict(
            "POST",
            f"/repos/{owner}/{repo}/issues",
            json={"title": title, "body": body},
        )

        return CreatedResource(number=data["number"], url=data["html_url"])

    async def list_issues(
        self,
        owner: str,
        repo: str,
        state: ItemState = "open",
    ) -> list[Issue]:
        """List issues, leaving out pull requests (the issues API returns both)."""
        data = await self._paginate(f"/repos/{owner}/{repo}/issues", params={"state": state})

        return [
            Issue(number=item["number"], title=item["title"], url=item["html_url"])
            for item in data
            if not item.get("pull_request")
        ]

    async def close_issue(self, owner: str, repo: str, issue_number: int) -> None:
        await self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/issues/{issue_number}",
            json={"state": "closed"},
        )

    async def create_comment(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        body: str,
    ) -> CreatedResource:
        """Create a comment on an issue or pull request."""
        data = await self._request_dict(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            json={"body": body},
        )

        return CreatedResource(id=data["id"], url=data["html_url"])

    async def list_comments(self, owner: str, repo: str, issue_number: int) -> list[Comment]:
        """List every comment on an issue or pull request."""
        data = await self._paginate(f"/repos/{owner}/{repo}/issues/{issue_number}/comments")
        return [Comment.from_api(item) for item in data]

    # -------------------------------------------------------------------------
    # Branches
    # -------------------------------------------------------------------------

    async def get_latest_commit_sha(self, owner: str, repo: str, branch: str) -> str:
        data = await self._request_dict(
            "GET", f"/repos/{owner}/{repo}/git/ref/heads/{_escape(branch)}"
        )
        return str(data["object"]["sha"])

    async def create_branch(self, owner: str, repo: str, branch: str, from_sha: str) -> None:
        await self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/refs",
            json={"ref": f"refs/heads/{branch}", "sha": from_sha},
        )

        logger.info("Branch created", branch=branch, sha=from_sha)

    async def delete_branch(self, owner: str, repo: str, branch: str) -> None:
        await self._request("DELETE", f"/repos/{owner}/{repo}/git/refs/heads/{_escape(branch)}")

    async def list_branches(self, owner: str, repo: str) -> list[Branch]:
        data = await self._paginate(f"/repos/{owner}/{repo}/branches")
        return [Branch(name=item["name"]) for item in data]

    # -------------------------------------------------------------------------
    # Contents
    # -------------------------------------------------------------------------

    async def _get_file_entry(
        self,
        owner: str,
        repo: str,
        path: str,
        ref: str | None = None,
    ) -> dict[str, Any]:
        params = {"ref": ref} if ref else None
        data = await self._request(
            "GET", f"/repos/{owner}/{repo}/contents/{_escape(path)}", params=params
        )

        if isinstance(data, list):
            raise FixtureError(f"Path {path} is a directory, not a file", {"path": path})

        if not isinstance(data, dict) or data.get("type") != "file":
            raise FixtureError(f"Path {path} is not a file", {"path": path})

        return data

    async def get_file_sha(
        self,
        owner: str,
        repo: str,
        path: str,
        ref: str | None = None,
    ) -> str:
        """Fetch the current blob sha of a file without decoding its content."""
        data = await self._get_file_entry(owner, repo, path, ref=ref)
        return str(data["sha"])

    async def get_file(
        self,
        owner: str,
        repo: str,
        path: str,
        ref: str | None = None,
    ) -> RepositoryFile:
        """Fetch a text file with its blob sha. Raises GitHubNotFoundError if absent."""
        data = await self._get_file_entry(owner, repo, path, ref=ref)

        content = data.get("content") or ""
        return RepositoryFile(
            path=data.get("path", path),
            sha=data["sha"],
            content=base64.b64decode(content).decode("utf-8"),
        )

    async def get_file_content(
        self,
        owner: str,
        repo: str,
        path: str,
        ref: str = "main",
    ) -> str:
        """Fetch the decoded text of a file at a specific ref."""
        repo_file = await self.get_file(owner, repo, path, ref=ref)
        return repo_file.content

    async def create_or_update_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: str,
        branch: str,
    ) -> RepositoryFile:
        """
        Write a file on a branch, creating it or overwriting the current version.

        The current blob sha is looked up first; GitHub requires it for updates
        and rejects it for creates.
        """
        sha: str | None = None
        try:
            sha = await self.get_file_sha(owner, repo, path, ref=branch)
        except GitHubNotFoundError:
            pass

        payload: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if sha:
            payload["sha"] = sha

        data = await self._request_dict(
            "PUT", f"/repos/{owner}/{repo}/contents/{_escape(path)}", json=payload
        )

        logger.info(
            "File written",
            path=path,
            branch=branch,
            action="updated" if sha else "created",
        )

        new_sha = (data.get("content") or {}).get("sha", "")
        return RepositoryFile(path=path, sha=new_sha, content=content)

    async def delete_file(
        self,
        owner: str,
        repo: str,
        path: str,
        message: str,
        branch: str | None = None,
    ) -> None:
        """Delete a file. Raises GitHubNotFoundError if it does not exist."""
        sha = await self.get_file_sha(owner, repo, path, ref=branch)

        payload: dict[str, Any] = {"message": message, "sha": sha}
        if branch:
            payload["branch"] = branch

        await self._request(
            "DELETE", f"/repos/{owner}/{repo}/contents/{_escape(path)}", json=payload
        )

    async def list_directory(self, owner: str, repo: str, path: str) -> list[str]:
        """List entry paths in a directory; a missing directory is empty."""
        try:
            data = await self._request("GET", f"/repos/{owner}/{repo}/contents/{_escape(path)}")
        except GitHubNotFoundError:
            return []

        if isinstance(data, list):
            return [entry["path"] for entry in data]

        return []

    async def list_workflow_files(self, owner: str, repo: str) -> list[str]:
        return await self.list_directory(owner, repo, WORKFLOWS_DIR)

    async def list_command_files(self, owner: str, repo: str) -> list[str]:
        return await self.list_directory(owner, repo, COMMANDS_DIR)
