"""
TASKMILL Model Sessions

The worker talks to the model through a ModelSession: send a message,
get back zero or more proposed capability invocations. A message is
either plain text, a batch of capability results, or both.

Sessions are stateful (they own the chat history); the worker is not.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Sequence

from loguru import logger

from taskmill.capabilities import CapabilityInvocation, CapabilityName, CapabilityResult
from taskmill.router import Router, RouterResponse


class ModelSession(ABC):
    """One conversation with the model service."""

    @abstractmethod
    def send(
        self,
        *,
        text: str | None = None,
        results: Sequence[CapabilityResult] = (),
        force: CapabilityName | None = None,
    ) -> list[CapabilityInvocation]:
        """
        Deliver results of the previous batch and/or new text.
        `force` asks the model to call that specific capability.
        """
        ...


class LiteLLMSession(ModelSession):
    """
    Chat session over the Router.

    Keeps the full message history so each call carries the system
    prompt, every prior tool call and every tool result.
    """

    def __init__(
        self,
        router: Router,
        system_prompt: str,
        tools: list[dict[str, Any]],
        tool_choice: str = "required",
    ):
        self.router = router
        self.tools = tools
        self.tool_choice = tool_choice
        self.messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        self.last_response: RouterResponse | None = None

    def send(
        self,
        *,
        text: str | None = None,
        results: Sequence[CapabilityResult] = (),
        force: CapabilityName | None = None,
    ) -> list[CapabilityInvocation]:
        for result in results:
            self.messages.append(self._tool_msg(result))
        if text:
            self.messages.append({"role": "user", "content": text})

        tool_choice: str | dict = self.tool_choice
        if force is not None:
            tool_choice = {"type": "function", "function": {"name": force.value}}

        response = self.router.complete(
            messages=self.messages,
            tools=self.tools,
            tool_choice=tool_choice,
        )
        self.last_response = response
        self.messages.append(self._assistant_msg(response))

        if response.content and not response.tool_calls:
            logger.debug(f"[SESSION] Model replied without tools: {response.content[:200]}")

        return [
            CapabilityInvocation(
                name=tc.name,
                arguments=tc.arguments,
                call_id=tc.id,
                parse_error=tc.parse_error,
            )
            for tc in response.tool_calls
        ]

    @staticmethod
    def _assistant_msg(response: RouterResponse) -> dict[str, Any]:
        msg: dict[str, Any] = {"role": "assistant", "content": response.content or None}
        if response.tool_calls:
            msg["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": tc.raw_arguments},
                }
                for tc in response.tool_calls
            ]
        return msg

    @staticmethod
    def _tool_msg(result: CapabilityResult) -> dict[str, Any]:
        return {
            "role": "tool",
            "tool_call_id": result.invocation.call_id,
            "name": result.invocation.name,
            "content": json.dumps(result.payload(), ensure_ascii=False, default=str),
        }
