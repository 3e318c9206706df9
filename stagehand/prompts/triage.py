"""PM prompts: issue triage and the daily standup."""

from __future__ import annotations

from pydantic import BaseModel, Field

TRIAGE_SYSTEM = "You are an experienced project manager triaging issues."
STANDUP_SYSTEM = "You are a project manager writing a concise daily standup."


class TriageContext(BaseModel):
    title: str
    body: str = ""


class StandupContext(BaseModel):
    open_issues: list[str] = Field(default_factory=list)
    recent_prs: list[str] = Field(default_factory=list)
    recent_commits: list[str] = Field(default_factory=list)


def triage_issue(ctx: TriageContext) -> str:
    return f"""You are a project manager triaging a new GitHub issue.

## Issue
Title: {ctx.title}
Body: {ctx.body or "No description provided."}

## Available Labels
Agent labels: agent:architect, agent:develop, agent:review, agent:pm
Status labels: status:ready, status:in-progress, status:blocked, status:review
Priority labels: priority:high, priority:medium, priority:low
Human labels: human:needed, human:approved

## Task
Analyze this issue and determine:
1. What type of work is this? (feature, bug, documentation, question, etc.)
2. What priority should it have?
3. Which agent should handle it?
4. Is any human input needed before agents can proceed?

Respond in JSON:
{{
  "type": "feature" | "bug" | "documentation" | "question" | "discussion" | "task",
  "priority": "high" | "medium" | "low",
  "agent": "architect" | "develop" | "review" | "pm" | "none",
  "needsHumanInput": boolean,
  "reasonForHuman": "Why human input is needed (or null)",
  "summary": "Brief 1-2 sentence summary of the issue",
  "suggestedLabels": ["list of labels to apply"]
}}"""


def _bullets(lines: list[str]) -> str:
    return "\n".join(f"- {line}" for line in lines) or "None."


def standup(ctx: StandupContext) -> str:
    return f"""Generate a daily standup summary for the development team.

## Open Issues
{_bullets(ctx.open_issues)}

## Recent Pull Requests
{_bullets(ctx.recent_prs)}

## Recent Commits
{_bullets(ctx.recent_commits)}

Create a concise standup report covering:
1. What was completed yesterday
2. What's in progress today
3. Any blockers or items needing attention
4. Priorities for today

Keep it focused and actionable. Use bullet points."""
