"""Workflow state derived from tracker labels.

Labels are the only durable state shared between runs.  The functions here
project a raw label list into explicit variants so agents never do ad hoc
string checks.  Every label combination is accepted, including leftovers of
a crashed run (e.g. two ``iteration:<n>`` labels).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum

ITERATION_CEILING = 3

_ITERATION_RE = re.compile(r"^iteration:(\d+)$")


class Label(StrEnum):
    HUMAN_NEEDED = "human:needed"
    STANDUP = "standup"

    AGENT_ARCHITECT = "agent:architect"
    AGENT_DEVELOP = "agent:develop"
    AGENT_REVIEW = "agent:review"
    AGENT_PM = "agent:pm"

    PRIORITY_HIGH = "priority:high"
    PRIORITY_MEDIUM = "priority:medium"
    PRIORITY_LOW = "priority:low"


class StatusLabel(StrEnum):
    READY = "status:ready"
    IN_PROGRESS = "status:in-progress"
    REVIEW = "status:review"
    APPROVED = "status:approved"
    CHANGES_REQUESTED = "status:changes-requested"


# ── Iteration counter ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class NotStarted:
    """No ``iteration:<n>`` label present."""

    n: int = 0
    stale_labels: tuple[str, ...] = ()


@dataclass(frozen=True)
class Iterating:
    n: int
    stale_labels: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CeilingReached:
    """``n >= ITERATION_CEILING``: automation must stop and ask a human."""

    n: int
    stale_labels: tuple[str, ...] = field(default_factory=tuple)


IterationState = NotStarted | Iterating | CeilingReached


def iteration_label(n: int) -> str:
    return f"iteration:{n}"


def project_iteration(labels: list[str], ceiling: int = ITERATION_CEILING) -> IterationState:
    """Project *labels* into an :data:`IterationState`.

    The highest ``iteration:<n>`` wins; every iteration label found is listed
    in ``stale_labels`` so the next increment removes all of them.
    """
    found: list[tuple[int, str]] = []
    for label in labels:
        match = _ITERATION_RE.match(label)
        if match:
            found.append((int(match.group(1)), label))

    if not found:
        return NotStarted()

    n = max(value for value, _ in found)
    stale = tuple(label for _, label in found)
    if n >= ceiling:
        return CeilingReached(n=n, stale_labels=stale)
    return Iterating(n=n, stale_labels=stale)


def next_iteration_label(state: IterationState) -> str:
    return iteration_label(state.n + 1)


# ── Status ────────────────────────────────────────────────────────────────


def project_status(labels: list[str]) -> StatusLabel | None:
    """Return the most advanced ``status:*`` label present, if any."""
    present = set(labels)
    for status in reversed(list(StatusLabel)):
        if status.value in present:
            return status
    return None


def needs_human(labels: list[str]) -> bool:
    return Label.HUMAN_NEEDED.value in labels
