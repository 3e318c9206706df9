"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration for stagehand. Reads from .env automatically."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # ── Completion provider (OpenRouter, OpenAI-compatible) ────────────
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_referer: str = "https://github.com/ai-dev-agents"
    openrouter_title: str = "AI Dev Agents"

    # Model tiers: OpenRouter model ids.
    #   planning / coding / review → high-capability tier
    #   quick / triage             → cheap tier
    #   budget                     → low-cost fallback
    planning_model: str = "anthropic/claude-sonnet-4-20250514"
    coding_model: str = "anthropic/claude-sonnet-4-20250514"
    review_model: str = "anthropic/claude-sonnet-4-20250514"
    quick_model: str = "openai/gpt-4o-mini"
    triage_model: str = "openai/gpt-4o-mini"
    budget_model: str = "deepseek/deepseek-chat"

    # ── GitHub ─────────────────────────────────────────────────────────
    # Token needs issues, pull requests, contents and discussions scopes.
    github_token: str = ""
    # ``owner/name``: set automatically inside GitHub Actions.
    github_repository: str = ""
    github_api_url: str = "https://api.github.com"
    default_branch: str = "main"
    http_timeout_seconds: float = 30.0

    # ── Dashboard telemetry (optional) ─────────────────────────────────
    dashboard_url: str = ""
    dashboard_api_key: str = ""

    # ── Run target, exactly one is read by each agent ─────────────────
    discussion_number: int | None = None
    issue_number: int | None = None
    pr_number: int | None = None

    # When true the architect checks approval before plan generation.
    # Default keeps plan generation first.
    architect_approval_precedence: bool = False

    # Logging
    log_level: str = "INFO"
    log_file: str = "logs/agent.log"

    @field_validator("discussion_number", "issue_number", "pr_number", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        # CI systems export unset workflow inputs as empty strings
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def repo_owner(self) -> str:
        return self.github_repository.split("/", 1)[0]

    @property
    def repo_name(self) -> str:
        parts = self.github_repository.split("/", 1)
        return parts[1] if len(parts) > 1 else ""


_settings: Settings | None = None


def get_settings() -> Settings:
    """Singleton accessor."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (used in tests)."""
    global _settings
    _settings = None
