"""Schemas for the structured (JSON) responses the agents request.

Every JSON completion is validated into one of these models immediately
after parsing.  The wire format uses camelCase keys; attributes are
snake_case and accept either spelling.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _none_to_list(value):
    return [] if value is None else value


# ---------------------------------------------------------------------------
# Architect
# ---------------------------------------------------------------------------

DiscussionPhase = Literal["gathering_requirements", "ready_to_plan", "plan_proposed", "approved"]


class ConversationAnalysis(_Wire):
    """The architect's reading of where a discussion stands."""

    phase: DiscussionPhase
    missing_info: list[str] = Field(default_factory=list, alias="missingInfo")
    # None (key omitted) is treated like False
    has_sufficient_context: bool | None = Field(default=None, alias="hasSufficientContext")
    approval_detected: bool | None = Field(default=None, alias="approvalDetected")
    summary: str = ""

    @field_validator("missing_info", mode="before")
    @classmethod
    def _empty_lists(cls, value):
        return _none_to_list(value)


class TechStack(_Wire):
    language: str = ""
    framework: str = ""
    database: str = ""
    other: list[str] = Field(default_factory=list)

    @field_validator("other", mode="before")
    @classmethod
    def _empty_lists(cls, value):
        return _none_to_list(value)


class PlannedIssue(_Wire):
    title: str
    description: str = ""
    labels: list[str] = Field(default_factory=list)
    estimate: str = ""

    @field_validator("labels", mode="before")
    @classmethod
    def _empty_lists(cls, value):
        return _none_to_list(value)


class Milestone(_Wire):
    name: str
    description: str = ""
    issues: list[PlannedIssue] = Field(default_factory=list)

    @field_validator("issues", mode="before")
    @classmethod
    def _empty_lists(cls, value):
        return _none_to_list(value)


class ProjectPlan(_Wire):
    name: str
    description: str = ""
    goals: list[str] = Field(default_factory=list)
    tech_stack: TechStack = Field(default_factory=TechStack, alias="techStack")
    milestones: list[Milestone] = Field(default_factory=list)
    repository_structure: list[str] = Field(default_factory=list, alias="repositoryStructure")
    risks: list[str] = Field(default_factory=list)

    @field_validator("goals", "milestones", "repository_structure", "risks", mode="before")
    @classmethod
    def _empty_lists(cls, value):
        return _none_to_list(value)

    @property
    def issue_count(self) -> int:
        return sum(len(m.issues) for m in self.milestones)


# ---------------------------------------------------------------------------
# Developer
# ---------------------------------------------------------------------------


class FileSpec(_Wire):
    path: str
    action: Literal["create", "modify"]
    description: str = ""


class ImplementationPlan(_Wire):
    summary: str = ""
    files: list[FileSpec] = Field(default_factory=list)
    steps: list[str] = Field(default_factory=list)
    test_strategy: str = Field(default="", alias="testStrategy")
    potential_issues: list[str] = Field(default_factory=list, alias="potentialIssues")

    @field_validator("files", "steps", "potential_issues", mode="before")
    @classmethod
    def _empty_lists(cls, value):
        return _none_to_list(value)


# ---------------------------------------------------------------------------
# PM / triage
# ---------------------------------------------------------------------------

TriageAgent = Literal["architect", "develop", "review", "pm", "none"]


class TriageResult(_Wire):
    type: str = "task"
    priority: Literal["high", "medium", "low"] = "medium"
    agent: TriageAgent = "none"
    needs_human_input: bool = Field(default=False, alias="needsHumanInput")
    reason_for_human: str | None = Field(default=None, alias="reasonForHuman")
    summary: str = ""
    suggested_labels: list[str] = Field(default_factory=list, alias="suggestedLabels")

    @field_validator("suggested_labels", mode="before")
    @classmethod
    def _empty_lists(cls, value):
        return _none_to_list(value)


# ---------------------------------------------------------------------------
# Reviewer
# ---------------------------------------------------------------------------


class FileReview(_Wire):
    """One file's review as returned by the model. ``score`` is not clamped."""

    filename: str = ""
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    positives: list[str] = Field(default_factory=list)
    security_concerns: list[str] = Field(default_factory=list, alias="securityConcerns")
    score: float | None = None

    @field_validator("issues", "suggestions", "positives", "security_concerns", mode="before")
    @classmethod
    def _empty_lists(cls, value):
        return _none_to_list(value)
