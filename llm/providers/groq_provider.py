"""Groq LLM provider (OpenAI-compatible API)."""

from __future__ import annotations

from core.resilience import RetryPolicy
from llm.providers.openai_provider import OpenAIProvider


class GroqProvider(OpenAIProvider):
    """Groq inference adapter. Uses OpenAI-compatible endpoint."""

    BASE_URL = "https://api.groq.com/openai/v1"
    provider_name = "groq"

    def __init__(
        self,
        api_key: str,
        model: str = "llama-3.3-70b-versatile",
        timeout: float = 120.0,
        temperature: float | None = None,
        policy: RetryPolicy | None = None,
    ) -> None:
        super().__init__(
            api_key=api_key,
            model=model,
            base_url=self.BASE_URL,
            timeout=timeout,
            temperature=temperature,
            policy=policy,
        )
