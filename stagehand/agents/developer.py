"""Developer agent: implements one issue as a branch plus a pull request.

Flow for ``ISSUE_NUMBER``:

1. Stop with ``human:needed`` when the iteration ceiling is reached.
2. Plan (planning tier, JSON).  Plans touching more than ``MAX_FILES`` files
   are rejected before any branch exists.
3. Create ``agent/issue-<n>-<slug>`` (an existing branch is reused).
4. Generate, validate (repair loop) and commit each file.
5. Open the PR, move the issue to ``status:review`` and bump its iteration.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from infra.forge import ForgeClient, ForgeError, PRRequest
from stagehand.core.llm import build_messages
from stagehand.core.logging import get_logger
from stagehand.core.memory import MemoryContext
from stagehand.core.runner import RunContext, report_on_issue, run_agent
from stagehand.core.schemas import FileSpec, ImplementationPlan
from stagehand.core.state import (
    ITERATION_CEILING,
    CeilingReached,
    Label,
    StatusLabel,
    next_iteration_label,
    project_iteration,
)
from stagehand.core.telemetry import ActivityRecord
from stagehand.core.utils import slugify, strip_code_fences, truncate
from stagehand.core.validator import validate_code
from stagehand.prompts import developer as prompts

logger = get_logger("agents.developer")

AGENT = "developer"
AGENT_TITLE = "Developer Agent"

MAX_FILES = 10
MAX_VALIDATION_RETRIES = 2

BRANCH_EXISTS_MARKER = "Reference already exists"


class PlanTooLargeError(Exception):
    """The plan touches more files than one run may change."""

    def __init__(self, file_count: int, limit: int = MAX_FILES) -> None:
        super().__init__(
            f"Too many files ({file_count}). Max is {limit}. Please break into smaller tasks."
        )
        self.file_count = file_count
        self.limit = limit


class CodeValidationError(Exception):
    """Generated code for *path* kept failing validation."""

    def __init__(self, path: str, errors: list[str], attempts: int) -> None:
        details = "\n".join(errors) or "Unknown validation error"
        super().__init__(f"Code validation failed for {path} after {attempts} attempts:\n{details}")
        self.path = path
        self.errors = errors
        self.attempts = attempts


class NothingImplementedError(Exception):
    def __init__(self) -> None:
        super().__init__("No files were successfully implemented. All validations failed.")


def branch_name_for(issue_number: int, title: str) -> str:
    return f"agent/issue-{issue_number}-{slugify(title)}"


def ensure_branch(tracker: ForgeClient, name: str, from_ref: str = "main") -> bool:
    """Create *name*; return False when it already existed."""
    try:
        tracker.create_branch(name, from_ref=from_ref)
    except ForgeError as exc:
        if BRANCH_EXISTS_MARKER not in str(exc):
            raise
        logger.info("Branch %s already exists, continuing", name)
        return False
    return True


def render_plan_comment(plan: ImplementationPlan) -> str:
    lines = ["**Implementation Plan**", "", plan.summary, "", "**Files to modify:**"]
    lines.extend(f"- `{f.path}` ({f.action}): {f.description}" for f in plan.files)
    lines += ["", "**Steps:**"]
    lines.extend(f"{i}. {step}" for i, step in enumerate(plan.steps, start=1))
    return "\n".join(lines) + "\n"


def request_plan(ctx: RunContext, title: str, body: str, tree: list[str], memory: MemoryContext) -> ImplementationPlan:
    prompt = prompts.analyze_issue(prompts.IssueAnalysisContext(
        title=title,
        body=body,
        structure=tree,
        project_context=truncate(memory.project, 2000),
        conventions=truncate(memory.conventions, 1000),
    ))
    result = ctx.llm.complete_json(
        build_messages(prompts.PLAN_SYSTEM, prompt),
        schema=ImplementationPlan,
        model=ctx.llm.model_for("planning"),
        max_tokens=2000,
    )
    return result.data


def generate_file(
    ctx: RunContext,
    spec: FileSpec,
    plan: ImplementationPlan,
    conventions: str,
    existing_content: str | None,
) -> str:
    """Generate *spec* and validate it, re-generating up to ``MAX_VALIDATION_RETRIES`` times.

    Raises:
        CodeValidationError: every attempt failed validation.
    """
    errors: list[str] = []
    attempts = MAX_VALIDATION_RETRIES + 1
    for attempt in range(1, attempts + 1):
        prompt = prompts.implement_file(prompts.ImplementFileContext(
            task=spec.description,
            path=spec.path,
            action=spec.action,
            summary=plan.summary,
            conventions=truncate(conventions, 500),
            existing_content=existing_content,
            previous_errors=errors,
        ))
        result = ctx.llm.complete(
            build_messages(prompts.IMPLEMENT_SYSTEM, prompt),
            model=ctx.llm.model_for("coding"),
            max_tokens=4000,
            temperature=0.3,
        )
        code = strip_code_fences(result.content)

        validation = validate_code(code, spec.path)
        if validation.valid:
            return code
        logger.warning("Validation failed for %s (attempt %d): %s", spec.path, attempt, validation.errors)
        errors = validation.errors

    raise CodeValidationError(spec.path, errors, attempts)


def run(ctx: RunContext, issue_number: int) -> int:
    def body(ctx: RunContext) -> ActivityRecord:
        tracker = ctx.tracker
        base = ctx.settings.default_branch

        issue = tracker.get_issue(issue_number)
        logger.info("Issue: %s", issue.title)

        iteration = project_iteration(issue.labels)
        if isinstance(iteration, CeilingReached):
            tracker.create_comment(
                issue_number,
                f"Maximum review iterations ({ITERATION_CEILING}) reached. "
                "Adding `human:needed` for manual review.",
            )
            tracker.add_labels(issue_number, [Label.HUMAN_NEEDED.value])
            return ActivityRecord(
                agent=AGENT,
                action="iteration_ceiling",
                work_item_id=issue_number,
                details={"iteration": iteration.n},
            )

        tracker.add_labels(issue_number, [StatusLabel.IN_PROGRESS.value])
        tracker.create_comment(
            issue_number,
            f"**{AGENT_TITLE}** picking up this task...\n\n"
            "Analyzing requirements and creating implementation plan.",
        )

        with ThreadPoolExecutor(max_workers=2) as pool:
            tree_future = pool.submit(tracker.get_repository_tree, base)
            memory_future = pool.submit(ctx.memory.get_all_context)
            tree = tree_future.result()
            memory = memory_future.result()

        plan = request_plan(ctx, issue.title, issue.body, tree, memory)
        logger.info("Plan: %s", plan.summary)
        if len(plan.files) > MAX_FILES:
            raise PlanTooLargeError(len(plan.files))

        tracker.create_comment(issue_number, render_plan_comment(plan))

        branch = branch_name_for(issue_number, issue.title)
        logger.info("Creating branch: %s", branch)
        ensure_branch(tracker, branch, from_ref=base)

        implemented: list[FileSpec] = []
        for spec in plan.files:
            logger.info("Implementing: %s", spec.path)
            existing = tracker.get_file_content(spec.path, ref=base) if spec.action == "modify" else None
            code = generate_file(ctx, spec, plan, memory.conventions, existing)
            tracker.create_or_update_file(
                spec.path,
                code,
                f"feat: {spec.description}\n\nCloses #{issue_number}",
                branch,
            )
            implemented.append(spec)
            logger.info("Committed: %s", spec.path)

        if not implemented:
            raise NothingImplementedError()

        pr_prompt = prompts.pr_body(prompts.PRBodyContext(
            issue_title=issue.title,
            issue_body=issue.body,
            summary=plan.summary,
            files=[(spec.path, spec.description) for spec in implemented],
        ))
        pr_text = ctx.llm.complete(
            build_messages(prompts.PR_BODY_SYSTEM, pr_prompt),
            model=ctx.llm.model_for("quick"),
            max_tokens=1000,
        ).content

        pr = tracker.create_pull_request(PRRequest(
            title=f"[Agent] {issue.title}",
            body=f"{pr_text}\n\n---\n*Created by {AGENT_TITLE}*\n\nCloses #{issue_number}",
            head_branch=branch,
            base_branch=base,
        ))
        logger.info("PR created: #%d", pr.number)

        tracker.add_labels(pr.number, [Label.AGENT_REVIEW.value])
        tracker.remove_label(issue_number, StatusLabel.IN_PROGRESS.value)
        tracker.add_labels(issue_number, [StatusLabel.REVIEW.value])

        for stale in iteration.stale_labels:
            tracker.remove_label(issue_number, stale)
        next_label = next_iteration_label(iteration)
        tracker.add_labels(issue_number, [next_label])

        tracker.create_comment(
            issue_number,
            "**Implementation Complete!**\n\n"
            f"PR #{pr.number} has been created with the implementation.\n\n"
            "The Reviewer Agent will now review the changes.",
        )

        return ActivityRecord(
            agent=AGENT,
            action="implement_issue",
            work_item_id=issue_number,
            pr_id=pr.number,
            model_used=ctx.llm.model_for("coding"),
            details={
                "files_changed": len(implemented),
                "branch": branch,
                "iteration": iteration.n + 1,
            },
        )

    return run_agent(
        AGENT,
        ctx,
        body,
        report_failure=report_on_issue(issue_number, AGENT_TITLE, "Manual intervention required."),
        work_item_id=issue_number,
    )
