"""Stagehand main entry point.

Runs exactly one agent, once, and exits::

    stagehand architect   # DISCUSSION_NUMBER
    stagehand developer   # ISSUE_NUMBER
    stagehand triage      # ISSUE_NUMBER
    stagehand reviewer    # PR_NUMBER
    stagehand standup     # no identifier

The identifier comes from the environment or ``--id``.  Exit codes: 0 on
success, 1 when the run failed, 2 on usage errors.
"""

from __future__ import annotations

import argparse
import sys

from stagehand.core.config import Settings, get_settings
from stagehand.core.logging import get_logger, setup_logging

EXIT_USAGE = 2

# agent → (settings attribute holding its identifier, env var name)
TARGETS: dict[str, tuple[str, str] | None] = {
    "architect": ("discussion_number", "DISCUSSION_NUMBER"),
    "developer": ("issue_number", "ISSUE_NUMBER"),
    "triage": ("issue_number", "ISSUE_NUMBER"),
    "reviewer": ("pr_number", "PR_NUMBER"),
    "standup": None,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stagehand",
        description="Run one Stagehand agent against the configured GitHub repository.",
    )
    parser.add_argument("agent", choices=sorted(TARGETS), help="agent to run")
    parser.add_argument(
        "--id",
        type=int,
        dest="target_id",
        help="discussion / issue / PR number (overrides the environment)",
    )
    return parser


def resolve_target(agent: str, target_id: int | None, settings: Settings) -> int | None:
    """Return the identifier for *agent*, or raise ``ValueError`` when it is missing."""
    target = TARGETS[agent]
    if target is None:
        return None
    if target_id is not None:
        return target_id
    attr, env_var = target
    value = getattr(settings, attr)
    if value is None:
        raise ValueError(f"{agent} needs {env_var} (or --id)")
    return value


def dispatch(agent: str, target: int | None, ctx) -> int:
    from stagehand.agents import architect, developer, reviewer, triage

    if agent == "architect":
        return architect.run(ctx, target)
    if agent == "developer":
        return developer.run(ctx, target)
    if agent == "triage":
        return triage.run(ctx, target)
    if agent == "reviewer":
        return reviewer.run(ctx, target)
    return triage.run_standup(ctx)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    setup_logging()
    logger = get_logger("main")
    settings = get_settings()

    try:
        target = resolve_target(args.agent, args.target_id, settings)
    except ValueError as exc:
        logger.error("%s", exc)
        return EXIT_USAGE

    if not settings.openrouter_api_key.strip():
        logger.error("OPENROUTER_API_KEY not set - completions will fail")

    from infra.forge import ForgeError
    from stagehand.core.runner import build_context

    try:
        ctx = build_context(settings)
    except ForgeError as exc:
        logger.error("Cannot create tracker client: %s", exc)
        return EXIT_USAGE

    return dispatch(args.agent, target, ctx)


if __name__ == "__main__":
    sys.exit(main())
