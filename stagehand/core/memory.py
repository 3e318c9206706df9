"""Project memory stored as markdown documents in the target repository.

Three documents live on the default branch under ``memory/``:
  - project_context.md: what the project is, written by the architect
  - conventions.md    : coding conventions, one bullet per rule
  - decisions.md      : architecture decision records (ADRs)

Agents read all three before planning or implementing.  Writes are plain
commits to the default branch.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from pydantic import BaseModel

from infra.forge import ForgeClient
from stagehand.core.logging import get_logger

logger = get_logger("core.memory")

MEMORY_DIR = "memory"

MEMORY_FILES = {
    "project": f"{MEMORY_DIR}/project_context.md",
    "conventions": f"{MEMORY_DIR}/conventions.md",
    "decisions": f"{MEMORY_DIR}/decisions.md",
}

_PLACEHOLDERS = {
    "project": "No project context documented yet.",
    "conventions": "No conventions documented yet.",
    "decisions": "No decisions documented yet.",
}

_CONVENTIONS_HEADER = "# Coding Conventions\n\n"
_DECISIONS_HEADER = "# Architecture Decision Records\n"


class MemoryContext(BaseModel):
    """All memory documents, with placeholders for the missing ones."""

    project: str
    conventions: str
    decisions: str


class ProjectMemory:
    """Read/write access to the ``memory/`` documents through the tracker."""

    def __init__(self, tracker: ForgeClient, branch: str = "main") -> None:
        self.tracker = tracker
        self.branch = branch

    def get(self, key: str) -> str | None:
        """Return the document for *key*, or ``None`` when it does not exist yet."""
        return self.tracker.get_file_content(MEMORY_FILES[key], ref=self.branch)

    def put(self, key: str, text: str, message: str) -> None:
        self.tracker.create_or_update_file(
            MEMORY_FILES[key],
            text,
            f"memory: {message}",
            self.branch,
        )
        logger.info("Memory updated [%s]: %s", key, message)

    def get_all_context(self) -> MemoryContext:
        """Fetch the three documents concurrently."""
        with ThreadPoolExecutor(max_workers=len(MEMORY_FILES)) as pool:
            futures = {key: pool.submit(self.get, key) for key in MEMORY_FILES}
            values = {key: future.result() or _PLACEHOLDERS[key] for key, future in futures.items()}
        return MemoryContext(**values)

    def update_project_context(self, content: str, message: str = "Update project context") -> None:
        self.put("project", content, message)

    def add_convention(self, convention: str) -> None:
        current = self.get("conventions") or _CONVENTIONS_HEADER
        self.put("conventions", current + f"\n- {convention}", "Add convention")

    def add_decision(
        self,
        title: str,
        context: str,
        decision: str,
        alternatives: list[str] | None = None,
    ) -> None:
        """Append an ADR to ``decisions.md``."""
        date = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        alternatives_text = "\n".join(f"- {alt}" for alt in alternatives or []) or "None documented."
        adr = (
            f"\n## {title}\n\n"
            f"**Date:** {date}\n\n"
            f"### Context\n{context}\n\n"
            f"### Decision\n{decision}\n\n"
            f"### Alternatives Considered\n{alternatives_text}\n\n"
            "---\n"
        )
        current = self.get("decisions") or _DECISIONS_HEADER
        self.put("decisions", current + adr, f"ADR - {title}")
