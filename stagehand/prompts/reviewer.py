"""Reviewer prompts: per-file review and the aggregated summary."""

from __future__ import annotations

import json

from pydantic import BaseModel

from stagehand.core.schemas import FileReview

REVIEW_SYSTEM = "You are a thorough but constructive code reviewer."
SUMMARY_SYSTEM = "You write constructive code reviews."


class FileReviewContext(BaseModel):
    filename: str
    patch: str | None = None
    full_content: str = ""
    issue_context: str = ""


class ReviewSummaryContext(BaseModel):
    reviews: list[FileReview]
    avg_score: float
    issue_count: int
    suggestion_count: int


def review_file(ctx: FileReviewContext) -> str:
    return f"""You are a senior code reviewer analyzing changes in a pull request.

## File: {ctx.filename}

## Changes (unified diff):
```diff
{ctx.patch or "[No patch available]"}
```

## Full File Content:
```
{ctx.full_content}
```

## Original Issue Context:
{ctx.issue_context}

## Review Checklist:
1. Does the code correctly address the issue requirements?
2. Are there any bugs or logic errors?
3. Is the code readable and maintainable?
4. Are there security concerns (SQL injection, XSS, auth issues)?
5. Is error handling adequate?
6. Are there missing edge cases?
7. Does it follow project conventions?

Respond in JSON:
{{
  "issues": ["Critical problems that MUST be fixed"],
  "suggestions": ["Non-critical improvements"],
  "positives": ["Good practices observed"],
  "securityConcerns": ["Any security issues"],
  "score": 1-10
}}"""


def summarize_review(ctx: ReviewSummaryContext) -> str:
    reviews = json.dumps(
        [review.model_dump(by_alias=True) for review in ctx.reviews],
        indent=2,
    )
    return f"""Summarize this code review into a cohesive PR review comment.

## File Reviews:
{reviews}

## Overall Stats:
- Files reviewed: {len(ctx.reviews)}
- Average score: {ctx.avg_score:.1f}
- Total issues: {ctx.issue_count}
- Total suggestions: {ctx.suggestion_count}

Create a well-formatted markdown review that:
1. Starts with an overall assessment
2. Lists critical issues that must be fixed
3. Lists suggestions for improvement
4. Ends with positive observations

Be constructive and helpful. If approving, be encouraging. If requesting changes, be specific about what needs to change."""
