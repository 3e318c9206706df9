"""PM agent: issue triage and the daily standup report."""

from __future__ import annotations

from datetime import datetime, timezone

from stagehand.core.llm import build_messages
from stagehand.core.logging import get_logger
from stagehand.core.runner import RunContext, report_on_issue, run_agent
from stagehand.core.schemas import TriageResult
from stagehand.core.state import Label, StatusLabel
from stagehand.core.telemetry import ActivityRecord
from stagehand.prompts import triage as prompts

logger = get_logger("agents.triage")

AGENT = "pm"
AGENT_TITLE = "PM Agent"

AGENT_NAMES = {
    "architect": "Architect Agent",
    "develop": "Developer Agent",
    "review": "Reviewer Agent",
    "pm": "PM Agent",
}


def derive_triage_labels(triage: TriageResult) -> list[str]:
    """Suggested labels plus priority, routing and escalation labels, de-duplicated in order."""
    labels = list(triage.suggested_labels)
    labels.append(f"priority:{triage.priority}")
    if triage.agent != "none":
        labels.append(f"agent:{triage.agent}")
        labels.append(StatusLabel.READY.value)
    if triage.needs_human_input:
        labels.append(Label.HUMAN_NEEDED.value)
    return list(dict.fromkeys(labels))


def render_triage_comment(triage: TriageResult) -> str:
    comment = (
        f"**{AGENT_TITLE} - Issue Triage**\n\n"
        f"**Type:** {triage.type}\n"
        f"**Priority:** {triage.priority}\n"
        f"**Summary:** {triage.summary}\n\n"
    )
    if triage.agent != "none":
        comment += f"**Assigned to:** {AGENT_NAMES[triage.agent]}\n\n"

    if triage.needs_human_input:
        comment += f"**Human Input Required:** {triage.reason_for_human}\n\n"
        comment += "Please provide the requested information or approval, then the agent can proceed.\n"
    elif triage.agent != "none":
        comment += f"This issue has been queued for the {triage.agent} agent and will be picked up automatically.\n"

    return comment + f"\n---\n*Triaged by {AGENT_TITLE}*"


def run(ctx: RunContext, issue_number: int) -> int:
    def body(ctx: RunContext) -> ActivityRecord:
        issue = ctx.tracker.get_issue(issue_number)
        logger.info("Issue: %s", issue.title)

        result = ctx.llm.complete_json(
            build_messages(
                prompts.TRIAGE_SYSTEM,
                prompts.triage_issue(prompts.TriageContext(title=issue.title, body=issue.body)),
            ),
            schema=TriageResult,
            model=ctx.llm.model_for("triage"),
            max_tokens=1000,
        )
        triage: TriageResult = result.data
        logger.info("Triage: %s - %s priority", triage.type, triage.priority)

        labels = derive_triage_labels(triage)
        ctx.tracker.add_labels(issue_number, labels)
        logger.info("Labels added: %s", ", ".join(labels))

        ctx.tracker.create_comment(issue_number, render_triage_comment(triage))

        return ActivityRecord(
            agent=AGENT,
            action="triage_issue",
            work_item_id=issue_number,
            model_used=ctx.llm.model_for("triage"),
            details={
                "type": triage.type,
                "priority": triage.priority,
                "assigned_agent": triage.agent,
                "needs_human": triage.needs_human_input,
            },
        )

    return run_agent(
        AGENT,
        ctx,
        body,
        report_failure=report_on_issue(issue_number, AGENT_TITLE, "Manual triage required."),
        failure_action="triage_error",
        work_item_id=issue_number,
    )


# ── Standup ───────────────────────────────────────────────────────────────


def standup_context(ctx: RunContext) -> prompts.StandupContext:
    issues = ctx.tracker.list_open_issues()
    pulls = ctx.tracker.list_recent_pull_requests(10)
    commits = ctx.tracker.list_recent_commits(10)
    return prompts.StandupContext(
        open_issues=[
            f"#{i.number} {i.title}" + (f" [{', '.join(i.labels)}]" if i.labels else "")
            for i in issues
        ],
        recent_prs=[f"#{p.number} {p.title} ({p.state})" for p in pulls],
        recent_commits=[
            f"{c.sha} {c.message.splitlines()[0] if c.message else ''} ({c.author})"
            for c in commits
        ],
    )


def run_standup(ctx: RunContext) -> int:
    def body(ctx: RunContext) -> ActivityRecord:
        standup = standup_context(ctx)
        report = ctx.llm.complete(
            build_messages(prompts.STANDUP_SYSTEM, prompts.standup(standup)),
            model=ctx.llm.model_for("quick"),
            max_tokens=1500,
        ).content

        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        issue = ctx.tracker.create_issue(
            f"Daily Standup - {today}",
            f"{report}\n\n---\n*Generated by {AGENT_TITLE}*",
            labels=[Label.STANDUP.value],
        )
        logger.info("Standup posted: #%d", issue.number)

        return ActivityRecord(
            agent=AGENT,
            action="standup",
            work_item_id=issue.number,
            model_used=ctx.llm.model_for("quick"),
            details={
                "open_issues": len(standup.open_issues),
                "recent_prs": len(standup.recent_prs),
                "recent_commits": len(standup.recent_commits),
            },
        )

    return run_agent(AGENT, ctx, body, failure_action="standup_error")
