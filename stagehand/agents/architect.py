"""Architect agent: turns a requirements discussion into a plan, then into issues.

One run reads the whole discussion, asks the planning model where the
conversation stands and takes exactly one action:

  (a) ask clarifying questions: requirements still being gathered
  (b) post a project plan: enough context to plan
  (c) create milestones and issues: the plan was approved

(a) and (b) are checked before (c).  Set ``ARCHITECT_APPROVAL_PRECEDENCE`` to
check (c) first.
"""

from __future__ import annotations

from enum import StrEnum

from infra.forge import Discussion
from stagehand.core.llm import build_messages
from stagehand.core.logging import get_logger
from stagehand.core.runner import FailureReporter, RunContext, best_effort, error_report, run_agent
from stagehand.core.schemas import ConversationAnalysis, ProjectPlan
from stagehand.core.state import Label
from stagehand.core.telemetry import ActivityRecord
from stagehand.prompts import architect as prompts

logger = get_logger("agents.architect")

AGENT = "architect"
AGENT_TITLE = "Architect Agent"

APPROVE_COMMAND = "@agent-architect approve"
ACCEPTANCE_CRITERIA = "- [ ] Implementation complete\n- [ ] Tests passing\n- [ ] Documentation updated"


class ArchitectAction(StrEnum):
    ASK_QUESTIONS = "ask_questions"
    GENERATE_PLAN = "generate_plan"
    CREATE_ISSUES = "create_issues"


def _approved(analysis: ConversationAnalysis) -> bool:
    return bool(analysis.approval_detected) or analysis.phase == "approved"


def decide_architect_action(
    analysis: ConversationAnalysis,
    approval_first: bool = False,
) -> ArchitectAction | None:
    """Pick the action for *analysis*, first match wins.

    With the default ordering a sufficient-context analysis always generates
    a plan, so issue creation is only reachable with ``approval_first``.
    """
    if approval_first and _approved(analysis):
        return ArchitectAction.CREATE_ISSUES
    if analysis.phase == "gathering_requirements" or not analysis.has_sufficient_context:
        return ArchitectAction.ASK_QUESTIONS
    if analysis.phase == "ready_to_plan" or analysis.has_sufficient_context:
        return ArchitectAction.GENERATE_PLAN
    if _approved(analysis):
        return ArchitectAction.CREATE_ISSUES
    return None


# ── Rendering ─────────────────────────────────────────────────────────────


def discussion_context(discussion: Discussion) -> prompts.DiscussionContext:
    entries = [prompts.ConversationEntry(author=discussion.author, content=discussion.body)]
    entries.extend(
        prompts.ConversationEntry(author=c.author, content=c.body, date=c.created_at)
        for c in discussion.comments
    )
    return prompts.DiscussionContext(title=discussion.title, body=discussion.body, conversation=entries)


def render_questions_comment(questions: str) -> str:
    return (
        f"**{AGENT_TITLE}**\n\n"
        "Thanks for sharing this idea! To help me create a solid plan, I have a few questions:\n\n"
        f"{questions}\n\n"
        "---\n*Once you've answered these, I'll generate a detailed project plan.*"
    )


def render_plan_comment(plan: ProjectPlan) -> str:
    lines = [f"**{AGENT_TITLE} - Project Plan**", "", f"## {plan.name}", "", plan.description, ""]

    lines.append("### Goals")
    lines.extend(f"- {goal}" for goal in plan.goals)

    stack = plan.tech_stack
    lines += [
        "",
        "### Tech Stack",
        f"- **Language:** {stack.language}",
        f"- **Framework:** {stack.framework}",
        f"- **Database:** {stack.database}",
    ]
    if stack.other:
        lines.append(f"- **Other:** {', '.join(stack.other)}")

    lines += ["", "### Milestones"]
    for index, milestone in enumerate(plan.milestones, start=1):
        lines += ["", f"#### {index}. {milestone.name}", milestone.description, "", "**Issues:**"]
        lines.extend(f"- [ ] {issue.title} *({issue.estimate})*" for issue in milestone.issues)

    lines += ["", "### Repository Structure", "```"]
    lines.extend(plan.repository_structure)
    lines.append("```")

    if plan.risks:
        lines += ["", "### Risks"]
        lines.extend(f"- {risk}" for risk in plan.risks)

    lines += [
        "",
        "---",
        f"**To approve this plan and create issues, reply with:** `{APPROVE_COMMAND}`",
        "",
        "*Or provide feedback for adjustments.*",
    ]
    return "\n".join(lines)


def render_project_context(plan: ProjectPlan) -> str:
    goals = "\n".join(f"- {goal}" for goal in plan.goals)
    return f"# {plan.name}\n\n{plan.description}\n\n## Goals\n{goals}"


def render_issue_body(description: str, estimate: str, discussion_number: int) -> str:
    return (
        f"## Description\n{description}\n\n"
        f"## Acceptance Criteria\n{ACCEPTANCE_CRITERIA}\n\n"
        f"## Estimate\n{estimate}\n\n"
        f"---\n*Created by {AGENT_TITLE} from discussion #{discussion_number}*"
    )


def render_creation_summary(plan: ProjectPlan, created: list[list[tuple[int, str]]]) -> str:
    """*created* holds ``(number, title)`` pairs per milestone, in plan order."""
    total = sum(len(issues) for issues in created)
    parts = [
        "**Project Created!**\n\n",
        f"I've created {total} issues across {len(plan.milestones)} milestones:\n\n",
    ]
    for milestone, issues in zip(plan.milestones, created):
        parts.append(f"### {milestone.name}\n")
        parts.extend(f"- #{number} - {title}\n" for number, title in issues)
        parts.append("\n")
    parts.append("\n---\n*The Developer Agent will now pick up issues with the `agent:develop` label.*")
    return "".join(parts)


# ── Actions ───────────────────────────────────────────────────────────────


def _analyze(ctx: RunContext, convo: prompts.DiscussionContext) -> ConversationAnalysis:
    result = ctx.llm.complete_json(
        build_messages(prompts.ANALYZE_SYSTEM, prompts.analyze_conversation(convo)),
        schema=ConversationAnalysis,
        model=ctx.llm.model_for("planning"),
    )
    return result.data


def _generate_plan(ctx: RunContext, convo: prompts.DiscussionContext) -> ProjectPlan:
    result = ctx.llm.complete_json(
        build_messages(prompts.PLAN_SYSTEM, prompts.generate_project_plan(convo)),
        schema=ProjectPlan,
        model=ctx.llm.model_for("planning"),
        max_tokens=4000,
    )
    return result.data


def ask_questions(ctx: RunContext, discussion: Discussion, convo: prompts.DiscussionContext) -> None:
    response = ctx.llm.complete(
        build_messages(prompts.QUESTIONS_SYSTEM, prompts.clarifying_questions(convo)),
        model=ctx.llm.model_for("planning"),
    )
    ctx.tracker.create_discussion_comment(discussion.node_id, render_questions_comment(response.content))


def post_plan(ctx: RunContext, discussion: Discussion, convo: prompts.DiscussionContext) -> ProjectPlan:
    plan = _generate_plan(ctx, convo)
    ctx.tracker.create_discussion_comment(discussion.node_id, render_plan_comment(plan))
    ctx.memory.update_project_context(
        render_project_context(plan),
        f"Project plan created: {plan.name}",
    )
    return plan


def create_issues(
    ctx: RunContext,
    discussion: Discussion,
    convo: prompts.DiscussionContext,
) -> tuple[ProjectPlan, int]:
    plan = _generate_plan(ctx, convo)
    created: list[list[tuple[int, str]]] = []

    for milestone in plan.milestones:
        logger.info("Creating milestone: %s", milestone.name)
        tracked = ctx.tracker.create_milestone(milestone.name, milestone.description)
        issues: list[tuple[int, str]] = []
        for spec in milestone.issues:
            issue = ctx.tracker.create_issue(
                spec.title,
                render_issue_body(spec.description, spec.estimate, discussion.number),
                labels=spec.labels,
                milestone=tracked.number,
            )
            logger.info("Created issue #%d: %s", issue.number, issue.title)
            issues.append((issue.number, issue.title))
        created.append(issues)

    ctx.tracker.create_discussion_comment(discussion.node_id, render_creation_summary(plan, created))
    return plan, sum(len(issues) for issues in created)


# ── Run ───────────────────────────────────────────────────────────────────


def _report_on_discussion(number: int, seen: dict[str, Discussion]) -> FailureReporter:
    def report(ctx: RunContext, exc: Exception) -> None:
        discussion = seen.get("discussion") or ctx.tracker.get_discussion(number)
        best_effort(
            "comment",
            lambda: ctx.tracker.create_discussion_comment(
                discussion.node_id,
                error_report(AGENT_TITLE, exc, "Manual intervention required."),
            ),
        )
        best_effort(
            "label",
            lambda: ctx.tracker.add_discussion_labels(discussion.node_id, [Label.HUMAN_NEEDED.value]),
        )

    return report


def run(ctx: RunContext, discussion_number: int) -> int:
    seen: dict[str, Discussion] = {}

    def body(ctx: RunContext) -> ActivityRecord:
        discussion = ctx.tracker.get_discussion(discussion_number)
        seen["discussion"] = discussion
        logger.info("Discussion: %s", discussion.title)

        convo = discussion_context(discussion)
        analysis = _analyze(ctx, convo)
        logger.info("Phase: %s", analysis.phase)

        action = decide_architect_action(analysis, ctx.settings.architect_approval_precedence)
        model = ctx.llm.model_for("planning")
        details: dict = {"discussion_number": discussion_number, "phase": analysis.phase}

        if action is ArchitectAction.ASK_QUESTIONS:
            ask_questions(ctx, discussion, convo)
        elif action is ArchitectAction.GENERATE_PLAN:
            plan = post_plan(ctx, discussion, convo)
            details.update(project_name=plan.name, milestones=len(plan.milestones), total_issues=plan.issue_count)
        elif action is ArchitectAction.CREATE_ISSUES:
            plan, issues_created = create_issues(ctx, discussion, convo)
            details.update(issues_created=issues_created, milestones=len(plan.milestones))
        else:
            logger.info("No architect action for phase %s", analysis.phase)

        return ActivityRecord(
            agent=AGENT,
            action=action.value if action else "no_action",
            work_item_id=discussion_number,
            model_used=model,
            details=details,
        )

    return run_agent(
        AGENT,
        ctx,
        body,
        report_failure=_report_on_discussion(discussion_number, seen),
        work_item_id=discussion_number,
    )
