"""Command line entry points for preparing and clearing the fixture repository."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
import typer

from harness.core.config import Settings, get_settings
from harness.core.exceptions import ConfigurationError, HarnessError
from harness.services.fixture.reconciler import CleanupReport, FixtureReconciler
from harness.services.github.client import GitHubClient
from harness.services.scenarios.review import ReviewScenario, ScenarioResult

logger = structlog.get_logger()

T = TypeVar("T")

app = typer.Typer(
    name="harness",
    help="Integration harness for the gemini-review workflow.",
    add_completion=False,
)


def _load_settings() -> Settings:
    try:
        return get_settings()
    except ConfigurationError as e:
        typer.echo(f"Configuration error:\n{e.message}", err=True)
        raise typer.Exit(code=1)


def _run(operation: Callable[[GitHubClient, Settings], Awaitable[T]]) -> T:
    """Run an async operation with a client that is closed afterwards."""
    settings = _load_settings()

    async def _execute() -> T:
        async with GitHubClient() as client:
            return await operation(client, settings)

    try:
        return asyncio.run(_execute())
    except HarnessError as e:
        logger.error("Operation failed", error=e.message, details=e.details)
        raise typer.Exit(code=1)


@app.command()
def setup() -> None:
    """Copy workflow files and mock code onto the base branch."""

    async def _setup(client: GitHubClient, settings: Settings) -> list[str]:
        return await FixtureReconciler(client, settings).reconcile_to_baseline()

    written = _run(_setup)
    typer.echo(f"Setup completed: {len(written)} file(s) written")


@app.command()
def cleanup() -> None:
    """Close PRs and issues, delete branches and test files."""

    async def _cleanup(client: GitHubClient, settings: Settings) -> CleanupReport:
        return await FixtureReconciler(client, settings).reconcile_to_empty()

    report = _run(_cleanup)
    typer.echo(
        "Cleanup completed: "
        f"{report.pull_requests_closed} PR(s), "
        f"{report.issues_closed} issue(s), "
        f"{len(report.branches_deleted)} branch(es), "
        f"{report.workflow_files_deleted} workflow file(s), "
        f"{report.command_files_deleted} command file(s), "
        f"{report.mock_files_deleted} mock file(s)"
    )


@app.command()
def review() -> None:
    """Open a test PR and wait for the review comment."""

    async def _review(client: GitHubClient, settings: Settings) -> ScenarioResult:
        return await ReviewScenario(client, settings).run()

    result = _run(_review)
    if not result.review_posted:
        typer.echo(f"No review comment on PR #{result.pr_number}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Review comment found on PR #{result.pr_number}")


if __name__ == "__main__":
    app()
