"""Shared fixtures: isolated settings, a scripted chat model and a mock tracker."""

from __future__ import annotations

import json
import logging
from itertools import count
from unittest.mock import MagicMock

import pytest
from langchain_core.messages import AIMessage

from infra.forge import ForgeClient, Milestone, PRResult, RateLimit, WorkItem
from stagehand.core.config import Settings, reset_settings
from stagehand.core.runner import build_context
from stagehand.core.telemetry import ActivityLogger

_ENV_VARS = (
    "OPENROUTER_API_KEY", "GITHUB_TOKEN", "GITHUB_REPOSITORY", "GITHUB_API_URL",
    "DASHBOARD_URL", "DASHBOARD_API_KEY", "DISCUSSION_NUMBER", "ISSUE_NUMBER",
    "PR_NUMBER", "ARCHITECT_APPROVAL_PRECEDENCE", "LOG_FILE", "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path):
    """No .env, no real credentials, no log file."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("LOG_FILE", "")
    monkeypatch.chdir(tmp_path)
    # setup_logging() turns propagation off; caplog needs it on
    logging.getLogger("stagehand").propagate = True
    reset_settings()
    yield
    reset_settings()


class ScriptedChat:
    """Stands in for ``ChatOpenAI``: returns queued replies in order.

    A reply may be a string, a dict (sent as JSON) or an exception to raise.
    """

    def __init__(self, replies=None, prompt_tokens: int = 100, completion_tokens: int = 50):
        self.replies = list(replies or [])
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.models: list[str] = []
        self.options: list[dict] = []
        self.prompts: list[list] = []

    def factory(self, model, **kwargs):
        self.models.append(model)
        self.options.append(kwargs)
        return self

    def invoke(self, messages):
        self.prompts.append(messages)
        if not self.replies:
            raise AssertionError("ScriptedChat ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if not isinstance(reply, str):
            reply = json.dumps(reply)
        return AIMessage(
            content=reply,
            usage_metadata={
                "input_tokens": self.prompt_tokens,
                "output_tokens": self.completion_tokens,
                "total_tokens": self.prompt_tokens + self.completion_tokens,
            },
        )

    def user_prompt(self, index: int) -> str:
        return self.prompts[index][-1].content


def make_tracker() -> MagicMock:
    tracker = MagicMock(spec=ForgeClient)
    numbers = count(100)

    tracker.check_rate_limit.return_value = RateLimit(remaining=5000, reset_at="2024-01-01T00:00:00Z")
    tracker.get_repository_tree.return_value = ["README.md", "src/app.py"]
    tracker.get_file_content.return_value = None
    tracker.create_pull_request.return_value = PRResult(
        id=1, url="https://github.com/owner/repo/pull/77", number=77,
    )
    tracker.create_milestone.side_effect = lambda title, description="": Milestone(
        number=next(numbers), title=title, description=description,
    )
    tracker.create_issue.side_effect = lambda title, body, labels=None, milestone=None: WorkItem(
        number=next(numbers), title=title, body=body, labels=labels or [],
    )
    return tracker


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, github_repository="owner/repo", github_token="tok", log_file="")


@pytest.fixture
def tracker() -> MagicMock:
    return make_tracker()


@pytest.fixture
def chat() -> ScriptedChat:
    return ScriptedChat()


@pytest.fixture
def ctx(settings, tracker, chat):
    return build_context(
        settings,
        tracker=tracker,
        model_factory=chat.factory,
        activity=MagicMock(spec=ActivityLogger),
        sleep=lambda seconds: None,
    )


def logged_record(ctx):
    """The single ActivityRecord a run emitted."""
    assert ctx.activity.log.call_count == 1
    return ctx.activity.log.call_args.args[0]
