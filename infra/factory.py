"""Tracker client factory.

:func:`get_forge_client` is the single entry-point for obtaining a
``ForgeClient`` instance bound to the configured repository.

Usage::

    from infra.factory import get_forge_client

    # Repository, token and API URL from GITHUB_REPOSITORY / GITHUB_TOKEN / GITHUB_API_URL
    client = get_forge_client()

    # Explicit repository override
    client = get_forge_client("owner/other-repo")
"""

from __future__ import annotations

from infra.forge import ForgeClient, ForgeError
from infra.github_client import GitHubClient


def _settings():  # pragma: no cover
    """Lazy import to allow test overrides."""
    from stagehand.core.config import get_settings
    return get_settings()


def get_forge_client(repository: str | None = None) -> ForgeClient:
    """Return a :class:`~infra.forge.ForgeClient` for *repository*.

    Args:
        repository: ``owner/name``.  Defaults to ``GITHUB_REPOSITORY``.

    Raises:
        ForgeError: If no repository is configured or it is not ``owner/name``.
    """
    settings = _settings()
    repository = repository or settings.github_repository
    if not repository:
        raise ForgeError("GITHUB_REPOSITORY is not set (expected 'owner/name')")
    if not settings.github_token:
        raise ForgeError("GITHUB_TOKEN is not set", status_code=401)

    return GitHubClient(
        token=settings.github_token,
        repository=repository,
        base_url=settings.github_api_url,
        timeout=settings.http_timeout_seconds,
    )
