from functools import lru_cache
from pathlib import Path
from typing import NamedTuple

from pydantic import AliasChoices, Field, SecretStr, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from harness.core.exceptions import ConfigurationError

REPO_NAME_EXAMPLE = "octo-org/review-sandbox"


class FileSeed(NamedTuple):
    """A local file copied onto the fixture's base branch during setup."""

    source: str
    dest: str
    message: str | None = None

    @property
    def commit_message(self) -> str:
        return self.message or f"Setup: Copy {self.source}"


# Workflow files to copy to the fixture repository
WORKFLOWS_TO_COPY: tuple[FileSeed, ...] = (
    FileSeed(
        source="examples/workflows/gemini-dispatch/gemini-dispatch.yml",
        dest=".github/workflows/gemini-dispatch.yml",
    ),
    FileSeed(
        source="examples/workflows/pr-review/gemini-review.yml",
        dest=".github/workflows/gemini-review.yml",
    ),
    FileSeed(
        source="examples/workflows/gemini-assistant/gemini-invoke.yml",
        dest=".github/workflows/gemini-invoke.yml",
    ),
    FileSeed(
        source="examples/workflows/issue-triage/gemini-triage.yml",
        dest=".github/workflows/gemini-triage.yml",
    ),
)

WORKFLOWS_DIR = ".github/workflows"
COMMANDS_DIR = ".github/commands"

MOCK_CODE_DIR = Path(__file__).resolve().parent.parent / "mock_code"
MOCK_CODE_PATH = "src/calculator.js"


class Settings(BaseSettings):  # type: ignore[misc]
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Fixture repository
    test_repo_name: str | None = None
    base_branch: str = "main"

    # GitHub (GITHUB_TOKEN for the GitHub App in CI, TEST_REPO_PAT locally)
    github_token: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("GITHUB_TOKEN", "TEST_REPO_PAT"),
    )
    github_api_url: str = "https://api.github.com"

    # Timeouts
    poll_interval_seconds: float = 10.0
    review_timeout_seconds: float = 300.0
    invoke_timeout_seconds: float = 300.0
    fix_timeout_seconds: float = 600.0

    # Review comment detection
    review_bot_login: str = "github-actions"
    review_markers: tuple[str, ...] = ("review summary", "📋")

    # Setup sources
    workflow_source_root: Path = Field(default_factory=Path.cwd)

    @model_validator(mode="after")
    def _check_required(self) -> "Settings":
        full_name = self.test_repo_name
        if not full_name:
            raise ValueError(
                "Environment variable TEST_REPO_NAME is required.\n"
                f'Format: "owner/repo" (e.g., "{REPO_NAME_EXAMPLE}")'
            )

        parts = full_name.split("/")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise ValueError(
                f'Invalid TEST_REPO_NAME format: "{full_name}"\n'
                f'Expected: "owner/repo" (e.g., "{REPO_NAME_EXAMPLE}")'
            )

        if self.github_token is None:
            raise ValueError(
                "GitHub authentication required. Set one of:\n"
                "  - GITHUB_TOKEN (production with GitHub App)\n"
                "  - TEST_REPO_PAT (local testing with PAT)"
            )

        return self

    @property
    def repo_owner(self) -> str:
        return str(self.test_repo_name).split("/")[0]

    @property
    def repo_name(self) -> str:
        return str(self.test_repo_name).split("/")[1]

    @property
    def file_seeds(self) -> tuple[FileSeed, ...]:
        """Workflow seeds followed by the mock calculator source."""
        return WORKFLOWS_TO_COPY + (
            FileSeed(
                source=str(MOCK_CODE_DIR / "calculator.js"),
                dest=MOCK_CODE_PATH,
                message="Setup: Add sample calculator code",
            ),
        )


def _describe_validation_error(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        ctx_error = error.get("ctx", {}).get("error")
        if ctx_error is not None:
            messages.append(str(ctx_error))
        else:
            location = ".".join(str(part) for part in error["loc"]) or "settings"
            messages.append(f"Invalid value for {location.upper()}: {error['msg']}")
    return "\n".join(messages)


@lru_cache
def get_settings() -> Settings:
    """Build and validate the harness configuration from the environment."""
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigurationError(_describe_validation_error(exc)) from exc

