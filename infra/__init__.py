"""Stagehand infrastructure layer: tracker API clients.

All issue, pull request, discussion and repository-content traffic goes
through this package.  Use :func:`~infra.factory.get_forge_client` to obtain a
client instance.

Quick start::

    from infra.factory import get_forge_client

    client = get_forge_client()
    issue  = client.get_issue(42)
    pr     = client.create_pull_request(PRRequest(
        title="[Agent] Add health endpoint",
        body="Implements /api/health.\n\nCloses #42",
        head_branch="agent/issue-42-add-health-endpoint",
    ))
"""

from infra.factory import get_forge_client
from infra.forge import (
    ChangedFile,
    Comment,
    Discussion,
    ForgeClient,
    ForgeError,
    PRRequest,
    PRResult,
    PullRequest,
    WorkItem,
)
from infra.github_client import GitHubClient

__all__ = [
    # Protocol & models
    "ForgeClient",
    "ForgeError",
    "WorkItem",
    "PullRequest",
    "ChangedFile",
    "Comment",
    "Discussion",
    "PRRequest",
    "PRResult",
    # Clients
    "GitHubClient",
    # Factory
    "get_forge_client",
]
