"""Small text helpers shared by the agents."""

from __future__ import annotations

import re

_LINKED_ISSUE_PATTERNS = [
    re.compile(r"closes?\s+#(\d+)", re.IGNORECASE),
    re.compile(r"fixes?\s+#(\d+)", re.IGNORECASE),
    re.compile(r"resolves?\s+#(\d+)", re.IGNORECASE),
]

_OPENING_FENCE_RE = re.compile(r"^```\w*\n")
_CLOSING_FENCE_RE = re.compile(r"\n```$")


def slugify(text: str, max_length: int = 30) -> str:
    """``"Add Login Page!"`` → ``"add-login-page"`` (truncated to *max_length*)."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"\s+", "-", slug)
    return slug[:max_length]


def extract_linked_issues(pr_body: str) -> list[int]:
    """Issue numbers referenced by closes/fixes/resolves keywords.

    Ordered by keyword (closes, then fixes, then resolves), then by position;
    duplicates dropped.
    """
    found: dict[int, None] = {}
    for pattern in _LINKED_ISSUE_PATTERNS:
        for match in pattern.finditer(pr_body or ""):
            found.setdefault(int(match.group(1)), None)
    return list(found)


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def strip_code_fences(code: str) -> str:
    """Remove a single wrapping markdown fence the model added despite instructions."""
    code = code.strip()
    if code.startswith("```"):
        code = _OPENING_FENCE_RE.sub("", code, count=1)
        code = _CLOSING_FENCE_RE.sub("", code, count=1)
    return code

