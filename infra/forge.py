"""Tracker interface: abstract protocol and shared data models.

All code that needs to talk to the project tracker (issues, pull requests,
discussions, repository contents) must go through a ``ForgeClient``
implementation.  Direct HTTP calls to the forge API outside this package are
not allowed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Protocol, runtime_checkable

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


class Comment(BaseModel):
    author: str = ""
    body: str = ""
    created_at: datetime | None = None


class WorkItem(BaseModel):
    """An issue or pull request as seen through the issues API."""

    number: int
    title: str
    body: str = ""
    url: str = ""
    author: str = ""
    labels: list[str] = Field(default_factory=list)
    is_pull_request: bool = False
    created_at: datetime | None = None


class PullRequest(BaseModel):
    number: int
    title: str
    body: str = ""
    url: str = ""
    author: str = ""
    labels: list[str] = Field(default_factory=list)
    head_ref: str
    base_ref: str = "main"
    state: str = "open"
    updated_at: datetime | None = None


class ChangedFile(BaseModel):
    """One entry of a pull request's file list."""

    filename: str
    status: str = "modified"  # added | modified | removed | renamed | ...
    patch: str | None = None
    additions: int = 0
    deletions: int = 0


class Discussion(BaseModel):
    """A repository discussion (GraphQL API)."""

    node_id: str
    number: int
    title: str
    body: str = ""
    author: str = ""
    labels: list[str] = Field(default_factory=list)
    comments: list[Comment] = Field(default_factory=list)


class Milestone(BaseModel):
    number: int
    title: str
    description: str = ""


class CommitSummary(BaseModel):
    sha: str
    message: str
    author: str = ""
    date: datetime | None = None


class RateLimit(BaseModel):
    remaining: int
    reset_at: datetime


class PRRequest(BaseModel):
    """Payload for creating a pull request."""

    title: str
    body: str = ""
    head_branch: str
    base_branch: str = "main"


class PRResult(BaseModel):
    """Result returned after a PR is created."""

    id: int
    url: str
    number: int


ReviewEvent = Literal["APPROVE", "REQUEST_CHANGES", "COMMENT"]


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class ForgeClient(Protocol):
    """Tracker operations required by the agents.

    A client is bound to one repository.  All methods are synchronous.

    Raises:
        ForgeError: on any HTTP or parsing error, unless a method documents
            otherwise.
    """

    # ── Quota ─────────────────────────────────────────────────────────

    def check_rate_limit(self) -> RateLimit:
        """Return the remaining core quota; warns when it is low."""
        ...

    # ── Issues / PR conversation ──────────────────────────────────────

    def get_issue(self, number: int) -> WorkItem: ...

    def get_comments(self, number: int) -> list[Comment]: ...

    def create_issue(
        self,
        title: str,
        body: str,
        labels: list[str] | None = None,
        milestone: int | None = None,
    ) -> WorkItem: ...

    def create_comment(self, number: int, body: str) -> None: ...

    def add_labels(self, number: int, labels: list[str]) -> None: ...

    def remove_label(self, number: int, label: str) -> None:
        """Remove *label*; a label that is not present is not an error."""
        ...

    def list_open_issues(self) -> list[WorkItem]:
        """Open issues, pull requests excluded."""
        ...

    # ── Pull requests ─────────────────────────────────────────────────

    def get_pull_request(self, number: int) -> PullRequest: ...

    def get_diff_files(self, number: int) -> list[ChangedFile]: ...

    def create_pull_request(self, pr: PRRequest) -> PRResult: ...

    def create_review(self, number: int, body: str, event: ReviewEvent = "COMMENT") -> None: ...

    def list_recent_pull_requests(self, count: int = 10) -> list[PullRequest]: ...

    # ── Repository contents ───────────────────────────────────────────

    def get_file_content(self, path: str, ref: str = "main") -> str | None:
        """Decoded file content, or ``None`` when the file does not exist."""
        ...

    def get_repository_tree(self, ref: str = "main") -> list[str]:
        """All blob paths at *ref*."""
        ...

    def create_branch(self, name: str, from_ref: str = "main") -> None:
        """Create *name* from *from_ref*.

        An existing branch raises :class:`ForgeError` whose message contains
        ``"Reference already exists"``.
        """
        ...

    def create_or_update_file(self, path: str, content: str, message: str, branch: str) -> None: ...

    def list_recent_commits(self, count: int = 10) -> list[CommitSummary]: ...

    # ── Milestones ────────────────────────────────────────────────────

    def create_milestone(self, title: str, description: str = "") -> Milestone: ...

    def list_milestones(self) -> list[Milestone]: ...

    # ── Discussions ───────────────────────────────────────────────────

    def get_discussion(self, number: int) -> Discussion: ...

    def create_discussion_comment(self, discussion_id: str, body: str) -> None:
        """Comment on a discussion identified by its GraphQL node id."""
        ...

    def add_discussion_labels(self, discussion_id: str, labels: list[str]) -> None: ...


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ForgeError(Exception):
    """Raised for any forge API error (HTTP errors, missing fields, …)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    def __repr__(self) -> str:  # pragma: no cover
        return f"ForgeError({self.args[0]!r}, status_code={self.status_code})"
