"""Setup and cleanup of the shared fixture repository."""

from dataclasses import dataclass, field
from pathlib import Path

import structlog

from harness.core.config import MOCK_CODE_PATH, FileSeed, Settings, get_settings
from harness.core.exceptions import GitHubNotFoundError
from harness.core.metrics import record_fixture_items
from harness.services.github.client import GitHubClient

logger = structlog.get_logger()


@dataclass
class CleanupReport:
    """What a reconcile-to-empty pass closed or deleted."""

    pull_requests_closed: int = 0
    issues_closed: int = 0
    branches_deleted: list[str] = field(default_factory=list)
    workflow_files_deleted: int = 0
    command_files_deleted: int = 0
    mock_files_deleted: int = 0

    @property
    def total(self) -> int:
        return (
            self.pull_requests_closed
            + self.issues_closed
            + len(self.branches_deleted)
            + self.workflow_files_deleted
            + self.command_files_deleted
            + self.mock_files_deleted
        )


class FixtureReconciler:
    """
    Drives the fixture repository to a known state.

    Every remote call is awaited before the next one starts. Cleanup steps
    run in a fixed order: pull requests are closed before their branches are
    deleted, since GitHub may refuse to delete a branch an open PR points at.
    """

    def __init__(
        self,
        github_client: GitHubClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.github = github_client or GitHubClient()
        self.owner = self.settings.repo_owner
        self.repo = self.settings.repo_name
        self.base_branch = self.settings.base_branch

    async def close(self) -> None:
        await self.github.close()

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    def _read_seed(self, seed: FileSeed) -> str:
        source = Path(seed.source)
        if not source.is_absolute():
            source = self.settings.workflow_source_root / source
        return source.read_text(encoding="utf-8")

    async def reconcile_to_baseline(self) -> list[str]:
        """
        Seed the workflow files and mock source onto the base branch.

        Writes are sequential and stop at the first failure; the error
        propagates and the fixture should be treated as untrusted.

        Returns:
            Destination paths written, in order.
        """
        logger.info("Starting setup", repository=self.settings.test_repo_name)

        written: list[str] = []
        for seed in self.settings.file_seeds:
            logger.info("Copying file", source=seed.source, dest=seed.dest)
            content = self._read_seed(seed)
            await self.github.create_or_update_file(
                self.owner,
                self.repo,
                seed.dest,
                content,
                seed.commit_message,
                self.base_branch,
            )
            written.append(seed.dest)

        record_fixture_items("seed_files", len(written))
        logger.info("Setup completed", files=len(written))
        return written

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------

    async def close_all_pull_requests(self) -> int:
        prs = await self.github.list_pull_requests(self.owner, self.repo, state="open")

        for pr in prs:
            logger.info("Closing pull request", number=pr.number, title=pr.title)
            await self.github.close_pull_request(self.owner, self.repo, pr.number)

        logger.info("Closed open pull requests", count=len(prs))
        return len(prs)

    async def close_all_issues(self) -> int:
        issues = await self.github.list_issues(self.owner, self.repo, state="open")

        for issue in issues:
            logger.info("Closing issue", number=issue.number, title=issue.title)
            await self.github.close_issue(self.owner, self.repo, issue.number)

        logger.info("Closed open issues", count=len(issues))
        return len(issues)

    async def delete_all_branches(self) -> list[str]:
        """Delete every branch except the protected base branch."""
        branches = await self.github.list_branches(self.owner, self.repo)
        to_delete = [b.name for b in branches if b.name != self.base_branch]

        for name in to_delete:
            logger.info("Deleting branch", branch=name)
            await self.github.delete_branch(self.owner, self.repo, name)

        logger.info("Deleted branches", count=len(to_delete))
        return to_delete

    async def _delete_files(self, paths: list[str], message: str) -> int:
        for path in paths:
            logger.info("Deleting file", path=path)
            await self.github.delete_file(self.owner, self.repo, path, message)
        return len(paths)

    async def delete_workflow_files(self) -> int:
        files = await self.github.list_workflow_files(self.owner, self.repo)
        count = await self._delete_files(files, "Cleanup: Remove test workflow file")
        logger.info("Deleted workflow files", count=count)
        return count

    async def delete_command_files(self) -> int:
        files = await self.github.list_command_files(self.owner, self.repo)
        count = await self._delete_files(files, "Cleanup: Remove test command file")
        logger.info("Deleted command files", count=count)
        return count

    async def delete_mock_code_files(self) -> int:
        try:
            await self.github.delete_file(
                self.owner,
                self.repo,
                MOCK_CODE_PATH,
                "Cleanup: Remove test code file",
            )
        except GitHubNotFoundError:
            logger.info("No mock code files found", path=MOCK_CODE_PATH)
            return 0

        logger.info("Deleted mock code file", path=MOCK_CODE_PATH)
        return 1

    async def reconcile_to_empty(self) -> CleanupReport:
        """
        Remove every transient artifact from the fixture repository.

        A missing directory or mock file counts as already clean. Any other
        error propagates and the remaining steps are skipped.
        """
        logger.info("Starting cleanup", repository=self.settings.test_repo_name)

        report = CleanupReport()
        report.pull_requests_closed = await self.close_all_pull_requests()
        record_fixture_items("pull_requests", report.pull_requests_closed)

        report.issues_closed = await self.close_all_issues()
        record_fixture_items("issues", report.issues_closed)

        report.branches_deleted = await self.delete_all_branches()
        record_fixture_items("branches", len(report.branches_deleted))

        report.workflow_files_deleted = await self.delete_workflow_files()
        record_fixture_items("workflow_files", report.workflow_files_deleted)

        report.command_files_deleted = await self.delete_command_files()
        record_fixture_items("command_files", report.command_files_deleted)

        report.mock_files_deleted = await self.delete_mock_code_files()
        record_fixture_items("mock_files", report.mock_files_deleted)

        logger.info("Cleanup completed", total=report.total)
        return report
