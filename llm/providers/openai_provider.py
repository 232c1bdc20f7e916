"""OpenAI chat-completions provider."""

from __future__ import annotations

import logging
from typing import Any

import openai
from openai import OpenAI

from core.errors import ReasoningEngineError
from core.resilience import LLM_TRANSIENT_STATUS, RetryPolicy, reasoning_policy, transient_predicate
from llm.base_llm import BaseLLM, ReasoningResult
from llm.response_parsing import decode_tool_invocations

logger = logging.getLogger("autoloop.llm.openai")

_status_transient = transient_predicate(LLM_TRANSIENT_STATUS)


def is_transient_openai_error(exc: BaseException) -> bool:
    # APITimeoutError subclasses APIConnectionError.
    return isinstance(exc, openai.APIConnectionError) or _status_transient(exc)


class OpenAIProvider(BaseLLM):
    """OpenAI API adapter with retry on throttling and 5xx responses."""

    provider_name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        timeout: float = 120.0,
        temperature: float | None = None,
        policy: RetryPolicy | None = None,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
        base_policy = policy or reasoning_policy()
        base_policy.is_transient = is_transient_openai_error
        self.policy = base_policy

    def _create(self, messages: list[dict[str, str]]) -> Any:
        kwargs: dict[str, Any] = {"model": self.model, "messages": messages}
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        return self.client.chat.completions.create(**kwargs)

    def complete(self, messages: list[dict[str, str]]) -> ReasoningResult:
        try:
            response = self.policy.call(self._create, messages)
        except ReasoningEngineError:
            raise
        except openai.OpenAIError as exc:
            raise ReasoningEngineError(f"{self.provider_name} completion failed: {exc}") from exc
        if not response.choices:
            raise ReasoningEngineError(f"{self.provider_name} returned no choices")
        message = response.choices[0].message
        invocations = decode_tool_invocations(getattr(message, "tool_calls", None))
        if invocations:
            logger.info(
                "Completion used %d tool(s): %s",
                len(invocations),
                ", ".join(item.name for item in invocations),
            )
        return ReasoningResult(text=message.content or "", tool_invocations=invocations)

    def chat(self, messages: list[dict[str, str]], **kwargs: Any) -> str:
        _ = kwargs
        return self.complete(messages).text
