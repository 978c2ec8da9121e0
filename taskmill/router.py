"""
TASKMILL Router — Vendor-Agnostic Model Abstraction

Routes the worker's chat calls through LiteLLM so nothing above this
layer knows which vendor is backing it. Handles budget tracking,
retries, and tool-call parsing.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any

import litellm
from loguru import logger
from pydantic import BaseModel, Field
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from taskmill.config_loader import TaskmillConfig


class BudgetExceededError(Exception):
    pass


# ---------------------------------------------------------------------------
# Usage Tracking
# ---------------------------------------------------------------------------

@dataclass
class UsageRecord:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
    call_count: int = 0


@dataclass
class BudgetTracker:
    """Tracks token + dollar spend per cycle."""
    max_tokens: int = 500_000
    max_dollars: float = 5.0
    usage: UsageRecord = field(default_factory=UsageRecord)

    @property
    def tokens_remaining(self) -> int:
        return max(0, self.max_tokens - self.usage.total_tokens)

    @property
    def dollars_remaining(self) -> float:
        return max(0.0, self.max_dollars - self.usage.estimated_cost)

    @property
    def budget_exceeded(self) -> bool:
        return self.usage.total_tokens >= self.max_tokens or self.usage.estimated_cost >= self.max_dollars

    def record(self, response: Any) -> None:
        """Record usage from a LiteLLM response.

        Token counts come from the response's usage block; the dollar cost
        comes from LiteLLM's cost calculator when it knows the model.

        Args:
            response (Any): The response object returned by LiteLLM.
        """
        usage = getattr(response, "usage", None)
        if usage:
            self.usage.prompt_tokens += getattr(usage, "prompt_tokens", 0) or 0
            self.usage.completion_tokens += getattr(usage, "completion_tokens", 0) or 0
            self.usage.total_tokens += getattr(usage, "total_tokens", 0) or 0

        try:
            self.usage.estimated_cost += litellm.completion_cost(completion_response=response)
        except Exception as e:
            logger.debug(f"[ROUTER] No cost estimate available: {e}")

        self.usage.call_count += 1

    def summary(self) -> dict:
        return {
            "total_tokens": self.usage.total_tokens,
            "estimated_cost": round(self.usage.estimated_cost, 4),
            "call_count": self.usage.call_count,
            "tokens_remaining": self.tokens_remaining,
            "dollars_remaining": round(self.dollars_remaining, 4),
        }


# ---------------------------------------------------------------------------
# Model capability helpers
# ---------------------------------------------------------------------------

def _is_gpt5_model(model: str) -> bool:
    """GPT-5 family models have restricted parameter support."""
    normalized = model.lower().replace("openai/", "")
    return normalized.startswith("gpt-5")


def _is_o_series_model(model: str) -> bool:
    """OpenAI o-series reasoning models don't support temperature."""
    normalized = model.lower().replace("openai/", "")
    return normalized.startswith("o1") or normalized.startswith("o3") or normalized.startswith("o4")


def _build_kwargs(
    model: str,
    messages: list[dict[str, Any]],
    temperature: float,
    max_tokens: int,
    tools: list[dict] | None,
    tool_choice: str | dict | None,
) -> dict[str, Any]:
    """
    Build LiteLLM kwargs with per-model param filtering.
    """
    kwargs: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
    }

    if not _is_gpt5_model(model) and not _is_o_series_model(model):
        kwargs["temperature"] = temperature

    if tools:
        kwargs["tools"] = tools
        if tool_choice:
            kwargs["tool_choice"] = tool_choice

    return kwargs


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class ToolCall(BaseModel):
    id: str = ""
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    raw_arguments: str = ""
    parse_error: str | None = None


class RouterResponse(BaseModel):
    content: str
    model: str
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tokens_used: int = 0
    cost: float = 0.0
    latency_ms: int = 0


def _parse_tool_call(raw: Any) -> ToolCall:
    function = getattr(raw, "function", None)
    name = getattr(function, "name", None) or ""
    raw_arguments = getattr(function, "arguments", None) or "{}"
    call = ToolCall(id=getattr(raw, "id", None) or "", name=name, raw_arguments=raw_arguments)

    try:
        parsed = json.loads(raw_arguments)
    except json.JSONDecodeError as e:
        call.parse_error = f"Invalid JSON in arguments: {e}"
        return call

    if not isinstance(parsed, dict):
        call.parse_error = "Arguments must be a JSON object"
        return call

    call.arguments = parsed
    return call


class Router:
    """
    Vendor-agnostic model router.

    The worker calls `router.complete(messages, tools=...)`.
    The router enforces budget and returns structured output.
    """

    def __init__(self, config: TaskmillConfig):
        self.config = config
        self.model = config.routing.worker
        self.budget = BudgetTracker(
            max_tokens=config.limits.max_tokens_per_cycle,
            max_dollars=config.limits.max_dollars_per_cycle,
        )

        litellm.suppress_debug_info = True

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        retry=retry_if_not_exception_type(BudgetExceededError),
        reraise=True,
    )
    def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict] | None = None,
        tool_choice: str | dict | None = None,
        temperature: float = 0.2,
        max_tokens: int = 8192,
    ) -> RouterResponse:
        """Send a completion request through LiteLLM.

        Args:
            messages: Chat history, including assistant tool calls and tool results.
            tools: Function-calling schemas the model may invoke.
            tool_choice: "required", "auto", or a specific function selector.
            temperature: Sampling temperature. Dropped for models that don't support it.
            max_tokens: Max response tokens.

        Raises:
            BudgetExceededError: If the token or dollar budget is already spent.
        """
        if self.budget.budget_exceeded:
            raise BudgetExceededError(
                f"Budget exceeded: {self.budget.summary()}"
            )

        start = time.monotonic()
        logger.debug(f"[ROUTER] worker → {self.model} ({len(messages)} messages)")

        kwargs = _build_kwargs(self.model, messages, temperature, max_tokens, tools, tool_choice)
        response = litellm.completion(**kwargs)
        elapsed_ms = int((time.monotonic() - start) * 1000)

        self.budget.record(response)

        message = response.choices[0].message
        tool_calls = [_parse_tool_call(tc) for tc in (getattr(message, "tool_calls", None) or [])]

        logger.debug(
            f"[ROUTER] worker complete — "
            f"{len(tool_calls)} tool call(s), "
            f"{self.budget.usage.total_tokens} tokens, "
            f"${self.budget.usage.estimated_cost:.4f}, "
            f"{elapsed_ms}ms"
        )

        return RouterResponse(
            content=message.content or "",
            model=self.model,
            tool_calls=tool_calls,
            tokens_used=getattr(getattr(response, "usage", None), "total_tokens", 0) or 0,
            cost=self.budget.usage.estimated_cost,
            latency_ms=elapsed_ms,
        )
