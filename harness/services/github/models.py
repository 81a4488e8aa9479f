from typing import Any, Literal

from pydantic import BaseModel

ItemState = Literal["open", "closed", "all"]


class PullRequest(BaseModel):
    """Pull request as seen by the fixture reconciler and scenarios."""

    number: int
    title: str
    url: str
    head: str


class Issue(BaseModel):
    """An issue (never a pull request) in the fixture repository."""

    number: int
    title: str
    url: str


class Branch(BaseModel):
    name: str


class Comment(BaseModel):
    """An issue or pull request comment."""

    id: int
    body: str = ""
    user: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Comment":
        user = data.get("user")
        return cls(
            id=data["id"],
            body=data.get("body") or "",
            user=user.get("login") if isinstance(user, dict) else None,
        )


class RepositoryFile(BaseModel):
    """A file on a branch, with the blob sha needed to overwrite or delete it."""

    path: str
    sha: str
    content: str = ""


class CreatedResource(BaseModel):
    """Identifier and link returned when a PR, issue or comment is created."""

    number: int | None = None
    id: int | None = None
    url: str
