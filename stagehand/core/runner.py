"""Shared run harness for the agents.

Every agent run follows the same contract:

    fetch → decide → complete → side effects → one telemetry record → exit 0

Any uncaught exception is handled exactly once, here: a best-effort
human-readable report on the work item, the ``human:needed`` label, a failure
telemetry record and exit code 1.  Failure reporting never masks the original
failure; its own errors are logged and dropped.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from infra.forge import ForgeClient
from stagehand.core.config import Settings, get_settings
from stagehand.core.costs import CostLedger
from stagehand.core.llm import ChatModelFactory, CompletionClient
from stagehand.core.logging import get_logger
from stagehand.core.memory import ProjectMemory
from stagehand.core.state import Label
from stagehand.core.telemetry import ActivityLogger, ActivityRecord

logger = get_logger("core.runner")

EXIT_OK = 0
EXIT_FAILURE = 1


@dataclass
class RunContext:
    """Everything one agent run needs; built fresh for every run."""

    settings: Settings
    tracker: ForgeClient
    ledger: CostLedger
    llm: CompletionClient
    activity: ActivityLogger
    memory: ProjectMemory


def build_context(
    settings: Settings | None = None,
    *,
    tracker: ForgeClient | None = None,
    model_factory: ChatModelFactory | None = None,
    activity: ActivityLogger | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RunContext:
    """Assemble a :class:`RunContext` with a new, empty cost ledger."""
    settings = settings or get_settings()
    if tracker is None:
        from infra.factory import get_forge_client
        tracker = get_forge_client(settings.github_repository)

    ledger = CostLedger()
    return RunContext(
        settings=settings,
        tracker=tracker,
        ledger=ledger,
        llm=CompletionClient(ledger, settings=settings, model_factory=model_factory, sleep=sleep),
        activity=activity or ActivityLogger(settings.dashboard_url, settings.dashboard_api_key),
        memory=ProjectMemory(tracker, branch=settings.default_branch),
    )


RunBody = Callable[[RunContext], ActivityRecord]
FailureReporter = Callable[[RunContext, Exception], None]


def error_report(agent_title: str, exc: Exception, closing: str) -> str:
    return f"**{agent_title} Error**\n\n```\n{exc}\n```\n\n{closing}"


def best_effort(description: str, step: Callable[[], None]) -> None:
    try:
        step()
    except Exception as exc:
        logger.error("Failure reporting step '%s' failed: %s", description, exc)


def report_on_issue(number: int | None, agent_title: str, closing: str) -> FailureReporter:
    """Comment on issue/PR *number* and add ``human:needed``."""

    def report(ctx: RunContext, exc: Exception) -> None:
        if number is None:
            return
        best_effort(
            "comment",
            lambda: ctx.tracker.create_comment(number, error_report(agent_title, exc, closing)),
        )
        best_effort("label", lambda: ctx.tracker.add_labels(number, [Label.HUMAN_NEEDED.value]))

    return report


def run_agent(
    agent: str,
    ctx: RunContext,
    body: RunBody,
    *,
    report_failure: FailureReporter | None = None,
    failure_action: str = "error",
    work_item_id: int | None = None,
    pr_id: int | None = None,
) -> int:
    """Run *body* under the shared contract and return the process exit code.

    *body* returns the success :class:`ActivityRecord`; ``tokens_used`` is
    filled from the run's ledger when the body leaves it unset.
    """
    logger.info("%s agent starting (work item=%s, pr=%s)", agent, work_item_id, pr_id)
    try:
        ctx.tracker.check_rate_limit()
        record = body(ctx)
    except Exception as exc:
        logger.exception("%s agent failed: %s", agent, exc)
        if report_failure is not None:
            best_effort("report", lambda: report_failure(ctx, exc))
        best_effort(
            "telemetry",
            lambda: ctx.activity.log(ActivityRecord(
                agent=agent,
                action=failure_action,
                work_item_id=work_item_id,
                pr_id=pr_id,
                tokens_used=ctx.ledger.total_tokens or None,
                success=False,
                error=str(exc),
            )),
        )
        return EXIT_FAILURE

    ctx.ledger.log()
    if record.tokens_used is None:
        record = record.model_copy(update={"tokens_used": ctx.ledger.total_tokens})
    best_effort("telemetry", lambda: ctx.activity.log(record))
    logger.info("%s agent completed: %s", agent, record.action)
    return EXIT_OK
