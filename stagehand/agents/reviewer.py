"""Reviewer agent: reviews every changed code file of a pull request.

Each file gets its own JSON review (review tier); the reviews are aggregated
by :func:`decide_review` into a single APPROVE / REQUEST_CHANGES / COMMENT
review, and the PR and linked issue labels are updated to match.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

from infra.forge import ChangedFile, ForgeError, PullRequest, ReviewEvent
from stagehand.core.llm import build_messages
from stagehand.core.logging import get_logger
from stagehand.core.runner import FailureReporter, RunContext, best_effort, error_report, run_agent
from stagehand.core.schemas import FileReview
from stagehand.core.state import Label, StatusLabel
from stagehand.core.telemetry import ActivityRecord
from stagehand.core.utils import extract_linked_issues, truncate
from stagehand.prompts import reviewer as prompts

logger = get_logger("agents.reviewer")

AGENT = "reviewer"
AGENT_TITLE = "Reviewer Agent"

CODE_FILE_RE = re.compile(r"\.(js|ts|jsx|tsx|py|go|rs|java|rb|php|vue|svelte)$")

MAX_CONTENT_CHARS = 6000
MAX_ISSUE_CONTEXT_CHARS = 1000
DEFAULT_SCORE = 5.0

NO_CONTENT = "[Could not fetch file content]"

_HEADLINES = {
    "APPROVE": "Approved",
    "REQUEST_CHANGES": "Changes Requested",
    "COMMENT": "Comment",
}

_ISSUE_UPDATES = {
    "APPROVE": "PR approved and ready to merge!",
    "REQUEST_CHANGES": "Changes requested on PR. Developer Agent will address feedback.",
    "COMMENT": "Review comments added to PR.",
}


class ReviewVerdict(BaseModel):
    event: ReviewEvent
    avg_score: float
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    positives: list[str] = Field(default_factory=list)
    security_concerns: list[str] = Field(default_factory=list)


def is_reviewable(file: ChangedFile) -> bool:
    return file.status != "removed" and bool(CODE_FILE_RE.search(file.filename))


def decide_review(reviews: list[FileReview]) -> ReviewVerdict:
    """Aggregate per-file reviews.

    A missing or zero score counts as 5; the mean of no reviews is 5.
    """
    issues = [i for r in reviews for i in r.issues]
    security = [s for r in reviews for s in r.security_concerns]
    if reviews:
        avg_score = sum(r.score or DEFAULT_SCORE for r in reviews) / len(reviews)
    else:
        avg_score = DEFAULT_SCORE

    event: ReviewEvent = "COMMENT"
    if security or len(issues) > 3 or avg_score < 5:
        event = "REQUEST_CHANGES"
    elif not issues and avg_score >= 7:
        event = "APPROVE"

    return ReviewVerdict(
        event=event,
        avg_score=avg_score,
        issues=issues,
        suggestions=[s for r in reviews for s in r.suggestions],
        positives=[p for r in reviews for p in r.positives],
        security_concerns=security,
    )


def render_review_body(verdict: ReviewVerdict, summary: str, file_count: int) -> str:
    body = f"## {_HEADLINES[verdict.event]} - Code Review by {AGENT_TITLE}\n\n{summary}"
    if verdict.security_concerns:
        body += "\n\n### Security Concerns\n"
        body += "".join(f"- {concern}\n" for concern in verdict.security_concerns)
    body += f"\n\n---\n*Reviewed {file_count} files | Score: {verdict.avg_score:.1f}/10*"
    return body


def _file_content(ctx: RunContext, path: str, pr: PullRequest) -> str:
    try:
        content = ctx.tracker.get_file_content(path, ref=pr.head_ref)
    except ForgeError as exc:
        logger.warning("Could not fetch %s at %s: %s", path, pr.head_ref, exc)
        return NO_CONTENT
    return content if content is not None else NO_CONTENT


def review_file(ctx: RunContext, file: ChangedFile, pr: PullRequest, issue_context: str) -> FileReview:
    prompt = prompts.review_file(prompts.FileReviewContext(
        filename=file.filename,
        patch=file.patch,
        full_content=truncate(_file_content(ctx, file.filename, pr), MAX_CONTENT_CHARS),
        issue_context=truncate(issue_context, MAX_ISSUE_CONTEXT_CHARS),
    ))
    result = ctx.llm.complete_json(
        build_messages(prompts.REVIEW_SYSTEM, prompt),
        schema=FileReview,
        model=ctx.llm.model_for("review"),
        max_tokens=1500,
    )
    return result.data.model_copy(update={"filename": file.filename})


def _report_on_pull_request(number: int) -> FailureReporter:
    def report(ctx: RunContext, exc: Exception) -> None:
        best_effort(
            "review",
            lambda: ctx.tracker.create_review(
                number,
                error_report(AGENT_TITLE, exc, "Manual review required."),
                "COMMENT",
            ),
        )
        best_effort("label", lambda: ctx.tracker.add_labels(number, [Label.HUMAN_NEEDED.value]))

    return report


def run(ctx: RunContext, pr_number: int) -> int:
    def body(ctx: RunContext) -> ActivityRecord:
        tracker = ctx.tracker
        pr = tracker.get_pull_request(pr_number)
        files = tracker.get_diff_files(pr_number)
        logger.info("PR: %s (%d files changed)", pr.title, len(files))

        linked = extract_linked_issues(pr.body)
        issue_context = "No linked issues found."
        if linked:
            issue = tracker.get_issue(linked[0])
            issue_context = f"**Issue #{issue.number}: {issue.title}**\n\n{issue.body or 'No description.'}"

        reviews: list[FileReview] = []
        for file in files:
            if not is_reviewable(file):
                logger.info("Skipping %s (%s)", file.filename, file.status)
                continue
            logger.info("Reviewing: %s", file.filename)
            reviews.append(review_file(ctx, file, pr, issue_context))

        verdict = decide_review(reviews)
        logger.info("Decision: %s (avg score: %.1f)", verdict.event, verdict.avg_score)

        summary = ctx.llm.complete(
            build_messages(
                prompts.SUMMARY_SYSTEM,
                prompts.summarize_review(prompts.ReviewSummaryContext(
                    reviews=reviews,
                    avg_score=verdict.avg_score,
                    issue_count=len(verdict.issues),
                    suggestion_count=len(verdict.suggestions),
                )),
            ),
            model=ctx.llm.model_for("quick"),
            max_tokens=1500,
        ).content

        tracker.create_review(pr_number, render_review_body(verdict, summary, len(reviews)), verdict.event)
        logger.info("Review submitted: %s", verdict.event)

        tracker.remove_label(pr_number, Label.AGENT_REVIEW.value)
        if verdict.event == "APPROVE":
            tracker.add_labels(pr_number, [StatusLabel.APPROVED.value])
        elif verdict.event == "REQUEST_CHANGES":
            tracker.add_labels(pr_number, [StatusLabel.CHANGES_REQUESTED.value, Label.AGENT_DEVELOP.value])

        if linked:
            tracker.create_comment(
                linked[0],
                f"**PR #{pr_number} Review Update**\n\n{_ISSUE_UPDATES[verdict.event]}",
            )

        return ActivityRecord(
            agent=AGENT,
            action="review_pr",
            work_item_id=linked[0] if linked else None,
            pr_id=pr_number,
            model_used=ctx.llm.model_for("review"),
            details={
                "decision": verdict.event,
                "files_reviewed": len(reviews),
                "issues_found": len(verdict.issues),
                "avg_score": verdict.avg_score,
            },
        )

    return run_agent(
        AGENT,
        ctx,
        body,
        report_failure=_report_on_pull_request(pr_number),
        pr_id=pr_number,
    )
