"""GitHub tracker client.

Implements :class:`~infra.forge.ForgeClient` against the GitHub REST API v3,
plus the GraphQL API for discussions.  Authentication uses a token supplied
via the ``GITHUB_TOKEN`` environment variable / config key.  Every request is
retried on 429/5xx through :func:`~stagehand.core.retry.with_retry`; 401/403
are never retried.

Usage::

    from infra.factory import get_forge_client
    client = get_forge_client()
    issue = client.get_issue(42)
"""

from __future__ import annotations

import base64
from datetime import datetime, timezone
from typing import Any, Callable
from urllib.parse import quote

import httpx

from infra.forge import (
    ChangedFile,
    Comment,
    CommitSummary,
    Discussion,
    ForgeError,
    Milestone,
    PRRequest,
    PRResult,
    PullRequest,
    RateLimit,
    ReviewEvent,
    WorkItem,
)
from stagehand.core.logging import get_logger
from stagehand.core.retry import is_transient_error, with_retry

logger = get_logger("infra.github")

_GITHUB_API = "https://api.github.com"

# Below this many remaining core requests a warning is logged.
LOW_RATE_LIMIT = 100

_DISCUSSION_QUERY = """
query($owner: String!, $repo: String!, $number: Int!) {
  repository(owner: $owner, name: $repo) {
    discussion(number: $number) {
      id
      number
      title
      body
      author { login }
      labels(first: 50) { nodes { name } }
      comments(first: 50) {
        nodes { id body author { login } createdAt }
      }
    }
  }
}
"""

_ADD_DISCUSSION_COMMENT = """
mutation($discussionId: ID!, $body: String!) {
  addDiscussionComment(input: { discussionId: $discussionId, body: $body }) {
    comment { id }
  }
}
"""

_LABEL_ID_QUERY = """
query($owner: String!, $repo: String!, $name: String!) {
  repository(owner: $owner, name: $repo) {
    label(name: $name) { id }
  }
}
"""

_ADD_LABELS = """
mutation($labelableId: ID!, $labelIds: [ID!]!) {
  addLabelsToLabelable(input: { labelableId: $labelableId, labelIds: $labelIds }) {
    clientMutationId
  }
}
"""


def _parse_dt(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp returned by GitHub (``2024-01-02T03:04:05Z``)."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.rstrip("Z")).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def _login(data: dict[str, Any] | None) -> str:
    return (data or {}).get("login", "") or ""


class GitHubClient:
    """GitHub REST + GraphQL client bound to one repository.

    Args:
        token:       GitHub token.  Pass an empty string to make
                     unauthenticated requests (read-only, heavily rate-limited).
        repository:  ``owner/name``.
        base_url:    API base URL.  Override in tests or for GitHub Enterprise.
        timeout:     HTTP timeout in seconds (default 30).
        retry_delay: base delay between retries of transient failures.
        sleep:       sleep function used between retries.
    """

    def __init__(
        self,
        token: str = "",
        repository: str = "",
        base_url: str = _GITHUB_API,
        timeout: float = 30.0,
        retry_delay: float = 1.0,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        if "/" not in repository:
            raise ForgeError(f"Repository must be 'owner/name', got {repository!r}")
        self.owner, self.repo = repository.split("/", 1)
        self._base_url = base_url.rstrip("/")
        if self._base_url.endswith("/api/v3"):
            self._graphql_url = self._base_url[: -len("/v3")] + "/graphql"
        else:
            self._graphql_url = f"{self._base_url}/graphql"
        self._retry_delay = retry_delay
        self._sleep = sleep
        headers: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(headers=headers, timeout=timeout)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _send(self, method: str, url: str, label: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ForgeError(
                f"GitHub {method} {label} failed: {exc.response.status_code} {exc.response.text[:200]}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise ForgeError(f"GitHub {method} {label} network error: {exc}") from exc

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self._base_url}{path}"
        retry_kwargs: dict[str, Any] = {}
        if self._sleep is not None:
            retry_kwargs["sleep"] = self._sleep
        return with_retry(
            lambda: self._send(method, url, path, **kwargs),
            max_attempts=3,
            initial_delay=self._retry_delay,
            backoff_multiplier=2.0,
            should_retry=is_transient_error,
            on_retry=lambda attempt, exc: logger.warning("GitHub retry %d for %s %s: %s", attempt, method, path, exc),
            **retry_kwargs,
        )

    def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self._request("GET", path, params=params)

    def _post(self, path: str, json: dict[str, Any]) -> Any:
        return self._request("POST", path, json=json)

    def _graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        retry_kwargs: dict[str, Any] = {}
        if self._sleep is not None:
            retry_kwargs["sleep"] = self._sleep
        payload = with_retry(
            lambda: self._send("POST", self._graphql_url, "/graphql", json={"query": query, "variables": variables}),
            max_attempts=3,
            initial_delay=self._retry_delay,
            should_retry=is_transient_error,
            **retry_kwargs,
        )
        if payload.get("errors"):
            messages = "; ".join(str(err.get("message", err)) for err in payload["errors"])
            raise ForgeError(f"GitHub GraphQL error: {messages}")
        return payload.get("data") or {}

    @property
    def _repo_path(self) -> str:
        """Return URL-encoded ``/repos/owner/name``."""
        return f"/repos/{quote(self.owner, safe='')}/{quote(self.repo, safe='')}"

    def _work_item_from_dict(self, data: dict[str, Any]) -> WorkItem:
        return WorkItem(
            number=data["number"],
            title=data.get("title", ""),
            body=data.get("body") or "",
            url=data.get("html_url", ""),
            author=_login(data.get("user")),
            labels=[lbl["name"] for lbl in data.get("labels", [])],
            is_pull_request="pull_request" in data,
            created_at=_parse_dt(data.get("created_at")),
        )

    def _pull_from_dict(self, data: dict[str, Any]) -> PullRequest:
        return PullRequest(
            number=data["number"],
            title=data.get("title", ""),
            body=data.get("body") or "",
            url=data.get("html_url", ""),
            author=_login(data.get("user")),
            labels=[lbl["name"] for lbl in data.get("labels", [])],
            head_ref=(data.get("head") or {}).get("ref", ""),
            base_ref=(data.get("base") or {}).get("ref", "main"),
            state=data.get("state", "open"),
            updated_at=_parse_dt(data.get("updated_at")),
        )

    # ------------------------------------------------------------------
    # Quota
    # ------------------------------------------------------------------

    def check_rate_limit(self) -> RateLimit:
        data = self._get("/rate_limit")
        core = data["resources"]["core"]
        limit = RateLimit(
            remaining=core["remaining"],
            reset_at=datetime.fromtimestamp(core["reset"], tz=timezone.utc),
        )
        logger.info(
            "GitHub API: %d requests remaining, resets at %s",
            limit.remaining,
            limit.reset_at.isoformat(),
        )
        if limit.remaining < LOW_RATE_LIMIT:
            logger.warning("Low rate limit remaining: %d", limit.remaining)
        return limit

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    def get_issue(self, number: int) -> WorkItem:
        data = self._get(f"{self._repo_path}/issues/{number}")
        return self._work_item_from_dict(data)

    def get_comments(self, number: int) -> list[Comment]:
        data = self._get(f"{self._repo_path}/issues/{number}/comments", params={"per_page": 100})
        return [
            Comment(
                author=_login(item.get("user")),
                body=item.get("body") or "",
                created_at=_parse_dt(item.get("created_at")),
            )
            for item in data
        ]

    def create_issue(
        self,
        title: str,
        body: str,
        labels: list[str] | None = None,
        milestone: int | None = None,
    ) -> WorkItem:
        payload: dict[str, Any] = {"title": title, "body": body, "labels": labels or []}
        if milestone is not None:
            payload["milestone"] = milestone
        data = self._post(f"{self._repo_path}/issues", json=payload)
        return self._work_item_from_dict(data)

    def create_comment(self, number: int, body: str) -> None:
        self._post(f"{self._repo_path}/issues/{number}/comments", json={"body": body})

    def add_labels(self, number: int, labels: list[str]) -> None:
        if not labels:
            return
        self._post(f"{self._repo_path}/issues/{number}/labels", json={"labels": labels})

    def remove_label(self, number: int, label: str) -> None:
        try:
            self._request("DELETE", f"{self._repo_path}/issues/{number}/labels/{quote(label, safe='')}")
        except ForgeError as exc:
            if exc.status_code != 404:
                raise
            logger.debug("Label %r not present on #%d", label, number)

    def list_open_issues(self) -> list[WorkItem]:
        # GitHub returns PRs in the issues list, filter them out
        data = self._get(
            f"{self._repo_path}/issues",
            params={"state": "open", "per_page": 50},
        )
        return [
            self._work_item_from_dict(item)
            for item in data
            if "pull_request" not in item
        ]

    # ------------------------------------------------------------------
    # Pull requests
    # ------------------------------------------------------------------

    def get_pull_request(self, number: int) -> PullRequest:
        data = self._get(f"{self._repo_path}/pulls/{number}")
        return self._pull_from_dict(data)

    def get_diff_files(self, number: int) -> list[ChangedFile]:
        data = self._get(f"{self._repo_path}/pulls/{number}/files", params={"per_page": 100})
        return [
            ChangedFile(
                filename=item["filename"],
                status=item.get("status", "modified"),
                patch=item.get("patch"),
                additions=item.get("additions", 0),
                deletions=item.get("deletions", 0),
            )
            for item in data
        ]

    def create_pull_request(self, pr: PRRequest) -> PRResult:
        data = self._post(
            f"{self._repo_path}/pulls",
            json={
                "title": pr.title,
                "body": pr.body,
                "head": pr.head_branch,
                "base": pr.base_branch,
            },
        )
        return PRResult(
            id=data["id"],
            url=data["html_url"],
            number=data["number"],
        )

    def create_review(self, number: int, body: str, event: ReviewEvent = "COMMENT") -> None:
        self._post(f"{self._repo_path}/pulls/{number}/reviews", json={"body": body, "event": event})

    def list_recent_pull_requests(self, count: int = 10) -> list[PullRequest]:
        data = self._get(
            f"{self._repo_path}/pulls",
            params={"state": "all", "per_page": count, "sort": "updated", "direction": "desc"},
        )
        return [self._pull_from_dict(item) for item in data]

    # ------------------------------------------------------------------
    # Repository contents
    # ------------------------------------------------------------------

    def _contents_path(self, path: str) -> str:
        return f"{self._repo_path}/contents/{quote(path.lstrip('/'), safe='/')}"

    def get_file_content(self, path: str, ref: str = "main") -> str | None:
        try:
            data = self._get(self._contents_path(path), params={"ref": ref})
        except ForgeError as exc:
            if exc.status_code == 404:
                return None
            raise
        if not isinstance(data, dict) or "content" not in data:
            raise ForgeError(f"{path} at {ref} is not a file")
        return base64.b64decode(data["content"]).decode("utf-8")

    def get_repository_tree(self, ref: str = "main") -> list[str]:
        data = self._get(
            f"{self._repo_path}/git/trees/{quote(ref, safe='')}",
            params={"recursive": "1"},
        )
        return [item["path"] for item in data.get("tree", []) if item.get("type") == "blob"]

    def create_branch(self, name: str, from_ref: str = "main") -> None:
        ref = self._get(f"{self._repo_path}/git/ref/heads/{quote(from_ref, safe='/')}")
        self._post(
            f"{self._repo_path}/git/refs",
            json={"ref": f"refs/heads/{name}", "sha": ref["object"]["sha"]},
        )

    def create_or_update_file(self, path: str, content: str, message: str, branch: str) -> None:
        sha: str | None = None
        try:
            existing = self._get(self._contents_path(path), params={"ref": branch})
            if isinstance(existing, dict):
                sha = existing.get("sha")
        except ForgeError as exc:
            if exc.status_code != 404:
                raise

        payload: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if sha:
            payload["sha"] = sha
        self._request("PUT", self._contents_path(path), json=payload)

    def list_recent_commits(self, count: int = 10) -> list[CommitSummary]:
        data = self._get(f"{self._repo_path}/commits", params={"per_page": count})
        commits: list[CommitSummary] = []
        for item in data:
            commit = item.get("commit") or {}
            author = commit.get("author") or {}
            commits.append(CommitSummary(
                sha=item["sha"][:7],
                message=commit.get("message", ""),
                author=author.get("name", ""),
                date=_parse_dt(author.get("date")),
            ))
        return commits

    # ------------------------------------------------------------------
    # Milestones
    # ------------------------------------------------------------------

    def create_milestone(self, title: str, description: str = "") -> Milestone:
        data = self._post(
            f"{self._repo_path}/milestones",
            json={"title": title, "description": description},
        )
        return Milestone(number=data["number"], title=data["title"], description=data.get("description") or "")

    def list_milestones(self) -> list[Milestone]:
        data = self._get(f"{self._repo_path}/milestones", params={"state": "open"})
        return [
            Milestone(number=item["number"], title=item["title"], description=item.get("description") or "")
            for item in data
        ]

    # ------------------------------------------------------------------
    # Discussions (GraphQL)
    # ------------------------------------------------------------------

    def get_discussion(self, number: int) -> Discussion:
        data = self._graphql(
            _DISCUSSION_QUERY,
            {"owner": self.owner, "repo": self.repo, "number": number},
        )
        node = (data.get("repository") or {}).get("discussion")
        if not node:
            raise ForgeError(f"Discussion #{number} not found", status_code=404)
        return Discussion(
            node_id=node["id"],
            number=node.get("number", number),
            title=node.get("title", ""),
            body=node.get("body") or "",
            author=_login(node.get("author")),
            labels=[lbl["name"] for lbl in (node.get("labels") or {}).get("nodes", [])],
            comments=[
                Comment(
                    author=_login(c.get("author")),
                    body=c.get("body") or "",
                    created_at=_parse_dt(c.get("createdAt")),
                )
                for c in (node.get("comments") or {}).get("nodes", [])
            ],
        )

    def create_discussion_comment(self, discussion_id: str, body: str) -> None:
        self._graphql(_ADD_DISCUSSION_COMMENT, {"discussionId": discussion_id, "body": body})

    def add_discussion_labels(self, discussion_id: str, labels: list[str]) -> None:
        label_ids: list[str] = []
        for name in labels:
            data = self._graphql(
                _LABEL_ID_QUERY,
                {"owner": self.owner, "repo": self.repo, "name": name},
            )
            label = (data.get("repository") or {}).get("label")
            if not label:
                raise ForgeError(f"Label {name!r} does not exist in {self.owner}/{self.repo}", status_code=404)
            label_ids.append(label["id"])
        if label_ids:
            self._graphql(_ADD_LABELS, {"labelableId": discussion_id, "labelIds": label_ids})

    def __repr__(self) -> str:  # pragma: no cover
        return f"GitHubClient(repository={self.owner}/{self.repo!r}, base_url={self._base_url!r})"
