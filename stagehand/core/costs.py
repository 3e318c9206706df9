"""Cost tracking for one agent run.

Every completion records prompt/completion tokens and its cost on the run's
``CostLedger``. The ledger is created fresh by the run harness and is never
persisted; there is no process-wide tracker.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from stagehand.core.logging import get_logger

logger = get_logger("core.costs")

# ---------------------------------------------------------------------------
# Pricing table: USD per 1K tokens (input / output separately)
# Keys are OpenRouter model ids. Unknown models cost nothing and log a warning.
# ---------------------------------------------------------------------------

MODEL_PRICING: dict[str, dict[str, float]] = {
    # Anthropic
    "anthropic/claude-sonnet-4-20250514": {"input": 0.003,   "output": 0.015},
    "anthropic/claude-3.5-sonnet":        {"input": 0.003,   "output": 0.015},
    "anthropic/claude-3-opus":            {"input": 0.015,   "output": 0.075},
    "anthropic/claude-3-haiku":           {"input": 0.00025, "output": 0.00125},
    # OpenAI
    "openai/gpt-4o":                      {"input": 0.005,   "output": 0.015},
    "openai/gpt-4o-mini":                 {"input": 0.00015, "output": 0.0006},
    "openai/gpt-4-turbo":                 {"input": 0.01,    "output": 0.03},
    # Others
    "google/gemini-pro-1.5":              {"input": 0.0025,  "output": 0.0075},
    "deepseek/deepseek-chat":             {"input": 0.0001,  "output": 0.0002},
    "deepseek/deepseek-coder":            {"input": 0.0001,  "output": 0.0002},
    "qwen/qwen-2.5-coder-32b-instruct":   {"input": 0.0002,  "output": 0.0006},
}


class TokenUsage(BaseModel):
    """Token counts reported by the provider for one completion."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


def calculate_cost(model: str, usage: TokenUsage | None) -> float:
    """Return the cost in USD of a single completion.

    Unknown models return 0.0 so accounting must never block a run.
    """
    if usage is None:
        return 0.0

    pricing = MODEL_PRICING.get(model)
    if pricing is None:
        logger.warning("Unknown model for cost calculation: %s", model)
        return 0.0

    input_cost = (max(usage.prompt_tokens, 0) / 1000) * pricing["input"]
    output_cost = (max(usage.completion_tokens, 0) / 1000) * pricing["output"]
    return input_cost + output_cost


def format_cost(cost: float) -> str:
    """Render a cost: fractional cents below one cent, dollars otherwise.

    >>> format_cost(0.005)
    '0.500c'
    >>> format_cost(0.01)
    '$0.0100'
    """
    if cost < 0.01:
        return f"{cost * 100:.3f}c"
    return f"${cost:.4f}"


def estimate_cost(model: str, input_text: str, estimated_output_tokens: int = 500) -> float:
    """Rough pre-flight estimate, assuming ~4 characters per input token."""
    return calculate_cost(
        model,
        TokenUsage(
            prompt_tokens=math.ceil(len(input_text) / 4),
            completion_tokens=estimated_output_tokens,
        ),
    )


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class ModelCost(BaseModel):
    cost: float = 0.0
    calls: int = 0
    tokens: int = 0


class CostSummary(BaseModel):
    """Serialisable snapshot of a ledger."""

    total_cost: float
    formatted_cost: str
    call_count: int
    input_tokens: int
    output_tokens: int
    total_tokens: int
    by_model: dict[str, ModelCost] = Field(default_factory=dict)


@dataclass
class CostLedger:
    """Accumulator for token usage and cost across one agent run."""

    total_cost: float = 0.0
    call_count: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    by_model: dict[str, ModelCost] = field(default_factory=dict)

    def track(self, model: str, usage: TokenUsage | None, cost: float) -> None:
        """Record one completion against *model*."""
        usage = usage or TokenUsage()
        self.total_cost += cost
        self.call_count += 1
        self.input_tokens += usage.prompt_tokens
        self.output_tokens += usage.completion_tokens

        entry = self.by_model.setdefault(model, ModelCost())
        entry.cost += cost
        entry.calls += 1
        entry.tokens += usage.total_tokens

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def summary(self) -> CostSummary:
        return CostSummary(
            total_cost=self.total_cost,
            formatted_cost=format_cost(self.total_cost),
            call_count=self.call_count,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            total_tokens=self.total_tokens,
            by_model={name: entry.model_copy() for name, entry in self.by_model.items()},
        )

    def log(self) -> None:
        """Write a human-readable cost summary to the log."""
        summary = self.summary()
        logger.info("Cost summary: total %s", summary.formatted_cost)
        logger.info("  Calls: %d", summary.call_count)
        logger.info(
            "  Tokens: %s (%s in / %s out)",
            f"{summary.total_tokens:,}",
            f"{summary.input_tokens:,}",
            f"{summary.output_tokens:,}",
        )
        if len(summary.by_model) > 1:
            for name, stats in summary.by_model.items():
                logger.info("  - %s: %s (%d calls)", name, format_cost(stats.cost), stats.calls)
