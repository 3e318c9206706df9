"""Structured completion client.

Wraps one chat completion (OpenRouter via ``langchain-openai``) in the retry
engine, records usage on the run's :class:`~stagehand.core.costs.CostLedger`
and, for JSON completions, parses and validates the response.

Model tiers:
  - ``planning`` / ``coding`` / ``review`` → high-capability model
  - ``quick`` / ``triage``                 → cheap model
  - ``budget``                             → low-cost fallback
"""

from __future__ import annotations

import json
import re
import time
from typing import Any, Callable, Literal, TypeVar

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel, ValidationError

from stagehand.core.config import Settings, get_settings
from stagehand.core.costs import CostLedger, TokenUsage, calculate_cost, format_cost
from stagehand.core.logging import get_logger
from stagehand.core.retry import error_status, with_retry

logger = get_logger("core.llm")

ModelTier = Literal["planning", "coding", "review", "quick", "triage", "budget"]

SchemaT = TypeVar("SchemaT", bound=BaseModel)

# Retry policy for provider calls: 429 and 5xx only.
LLM_MAX_ATTEMPTS = 3
LLM_RETRY_DELAY = 2.0
LLM_BACKOFF = 2.0

_JSON_FENCE_RE = re.compile(r"```json\s*([\s\S]*?)\s*```")

ChatModelFactory = Callable[..., BaseChatModel]


class InvalidJSONError(Exception):
    """The model's response could not be parsed (or validated) as the expected JSON.

    Fatal for the run: re-sending the same prompt would most likely reproduce
    the same output, so the completion layer never retries it.
    """

    def __init__(self, message: str = "LLM returned invalid JSON", content: str = "") -> None:
        super().__init__(message)
        self.content = content


class CompletionResult(BaseModel):
    content: str
    usage: TokenUsage
    cost: float
    model: str


class JSONCompletionResult(CompletionResult):
    data: Any = None


def build_messages(system_prompt: str, user_prompt: str) -> list[BaseMessage]:
    return [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)]


def model_for_tier(tier: ModelTier, settings: Settings | None = None) -> str:
    """Return the configured model id for a tier."""
    settings = settings or get_settings()
    mapping = {
        "planning": settings.planning_model,
        "coding":   settings.coding_model,
        "review":   settings.review_model,
        "quick":    settings.quick_model,
        "triage":   settings.triage_model,
        "budget":   settings.budget_model,
    }
    return mapping[tier]


def _should_retry_provider(exc: Exception) -> bool:
    status = error_status(exc)
    if status is None:
        return False
    return status == 429 or status >= 500


def extract_token_usage(response: object) -> TokenUsage:
    """Extract prompt/completion token counts from a LangChain response.

    Prefers ``usage_metadata`` and falls back to the raw OpenAI
    ``response_metadata.token_usage`` block.  Missing metadata yields zeros.
    """
    meta = getattr(response, "usage_metadata", None)
    if meta and isinstance(meta, dict):
        prompt = meta.get("input_tokens", 0) or meta.get("prompt_tokens", 0)
        completion = meta.get("output_tokens", 0) or meta.get("completion_tokens", 0)
        if prompt or completion:
            return TokenUsage(prompt_tokens=prompt, completion_tokens=completion)

    rm = getattr(response, "response_metadata", {}) or {}
    usage = rm.get("token_usage") or rm.get("usage") or {}
    if isinstance(usage, dict):
        prompt = usage.get("prompt_tokens", 0) or 0
        completion = usage.get("completion_tokens", 0) or 0
        if prompt or completion:
            return TokenUsage(prompt_tokens=prompt, completion_tokens=completion)

    return TokenUsage()


def parse_json_content(content: str | None) -> Any:
    """Parse *content* as JSON, falling back to a ```json fenced block.

    Raises:
        InvalidJSONError: when neither the whole content nor a fenced block parses.
    """
    text = content or ""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        logger.error("Failed to parse JSON response: %s", text[:500])

    match = _JSON_FENCE_RE.search(text)
    if match:
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            pass

    raise InvalidJSONError(content=text)


def _make_openrouter_model(
    model: str,
    *,
    max_tokens: int,
    temperature: float,
    json_mode: bool,
    settings: Settings,
) -> BaseChatModel:
    from langchain_openai import ChatOpenAI

    kwargs: dict[str, Any] = {}
    if json_mode:
        kwargs["model_kwargs"] = {"response_format": {"type": "json_object"}}

    # max_retries=0: retries are owned by with_retry so the policy is uniform
    return ChatOpenAI(
        model=model,
        api_key=settings.openrouter_api_key,
        base_url=settings.openrouter_base_url,
        max_tokens=max_tokens,
        temperature=temperature,
        max_retries=0,
        default_headers={
            "HTTP-Referer": settings.openrouter_referer,
            "X-Title": settings.openrouter_title,
        },
        **kwargs,
    )


class CompletionClient:
    """Chat completions with retry, cost accounting and JSON parsing.

    Args:
        ledger:        the run's cost ledger; every successful call is recorded on it.
        model_factory: builds a LangChain chat model from
                       ``(model, max_tokens=, temperature=, json_mode=, settings=)``.
                       Override in tests.
        sleep:         sleep function used between retries.
    """

    def __init__(
        self,
        ledger: CostLedger,
        *,
        settings: Settings | None = None,
        model_factory: ChatModelFactory | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.ledger = ledger
        self._settings = settings or get_settings()
        self._model_factory = model_factory or _make_openrouter_model
        self._sleep = sleep

    def model_for(self, tier: ModelTier) -> str:
        return model_for_tier(tier, self._settings)

    def complete(
        self,
        messages: list[BaseMessage],
        *,
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> CompletionResult:
        """Run one chat completion and record its cost."""
        model = model or self.model_for("coding")
        chat = self._model_factory(
            model,
            max_tokens=max_tokens,
            temperature=temperature,
            json_mode=json_mode,
            settings=self._settings,
        )

        response = with_retry(
            lambda: chat.invoke(messages),
            max_attempts=LLM_MAX_ATTEMPTS,
            initial_delay=LLM_RETRY_DELAY,
            backoff_multiplier=LLM_BACKOFF,
            should_retry=_should_retry_provider,
            on_retry=lambda attempt, exc: logger.warning("LLM retry %d: %s", attempt, exc),
            sleep=self._sleep,
        )

        usage = extract_token_usage(response)
        cost = calculate_cost(model, usage)
        self.ledger.track(model, usage, cost)
        logger.info("LLM cost: %s (%d tokens) [%s]", format_cost(cost), usage.total_tokens, model)

        content = response.content if isinstance(response.content, str) else str(response.content)
        rm = getattr(response, "response_metadata", {}) or {}
        return CompletionResult(
            content=content,
            usage=usage,
            cost=cost,
            model=rm.get("model_name") or model,
        )

    def complete_json(
        self,
        messages: list[BaseMessage],
        *,
        schema: type[SchemaT] | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> JSONCompletionResult:
        """Run a JSON-mode completion and parse (and optionally validate) it.

        Raises:
            InvalidJSONError: unparseable output, or output that fails *schema*.
        """
        result = self.complete(
            messages,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            json_mode=True,
        )
        data = parse_json_content(result.content)

        if schema is not None:
            try:
                data = schema.model_validate(data)
            except ValidationError as exc:
                raise InvalidJSONError(
                    f"LLM returned JSON that does not match {schema.__name__}: "
                    f"{exc.error_count()} validation error(s)",
                    content=result.content,
                ) from exc

        return JSONCompletionResult(**result.model_dump(), data=data)
