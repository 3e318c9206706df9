"""Bounded retry with exponential backoff, shared by every external call.

Authorization failures (HTTP 401/403) are never retried, whatever the
caller's ``should_retry`` says.  Everything else is retried only while
``should_retry(error)`` is true and attempts remain; the last error is
re-raised unchanged.
"""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from stagehand.core.logging import get_logger

logger = get_logger("core.retry")

T = TypeVar("T")

AUTH_STATUSES = frozenset({401, 403})


def error_status(exc: BaseException) -> int | None:
    """Return the HTTP status carried by *exc*, if any.

    Understands ``openai.APIStatusError`` (``status_code``), ``ForgeError``
    (``status_code``), objects exposing ``status`` and ``httpx.HTTPStatusError``
    (``response.status_code``).
    """
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return None


def is_auth_error(exc: BaseException) -> bool:
    return error_status(exc) in AUTH_STATUSES


def is_transient_error(exc: BaseException) -> bool:
    """Rate-limited (429) or server-side (5xx) failures."""
    status = error_status(exc)
    return status is not None and (status == 429 or status >= 500)


def with_retry(
    operation: Callable[[], T],
    *,
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    backoff_multiplier: float = 2.0,
    should_retry: Callable[[Exception], bool] = lambda exc: True,
    on_retry: Callable[[int, Exception], None] | None = None,
    sleep: Callable[[float], None] | None = None,
) -> T:
    """Call *operation* up to *max_attempts* times.

    The delay before attempt ``k`` (k >= 2) is
    ``initial_delay * backoff_multiplier ** (k - 2)``.
    ``on_retry(attempt, error)`` runs before each sleep and cannot change the
    outcome.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    sleep = sleep or time.sleep

    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except Exception as exc:
            if is_auth_error(exc) or not should_retry(exc):
                raise
            if attempt == max_attempts:
                raise

            delay = initial_delay * backoff_multiplier ** (attempt - 1)
            logger.info("Attempt %d failed, retrying in %.1fs: %s", attempt, delay, exc)
            if on_retry is not None:
                try:
                    on_retry(attempt, exc)
                except Exception as hook_exc:
                    logger.warning("on_retry hook raised: %s", hook_exc)
            sleep(delay)


def retry_with_backoff(
    operation: Callable[[], T],
    max_retries: int = 3,
    base_delay: float = 1.0,
) -> T:
    """Shorthand for :func:`with_retry` with a doubling backoff."""
    return with_retry(
        operation,
        max_attempts=max_retries,
        initial_delay=base_delay,
        backoff_multiplier=2.0,
    )
