"""LLM provider factory."""

from __future__ import annotations

import os
from typing import Any

from core.errors import ConfigurationError
from core.resilience import reasoning_policy
from llm.base_llm import BaseLLM
from llm.providers.groq_provider import GroqProvider
from llm.providers.mock_provider import MockProvider
from llm.providers.openai_provider import OpenAIProvider

_KEY_ENV = {"openai": "OPENAI_API_KEY", "groq": "GROQ_API_KEY"}


def build_llm(config: dict[str, Any]) -> BaseLLM:
    """Build the configured reasoning engine.

    Raises ConfigurationError when the provider is unknown or its API key is
    missing; the mock engine is only used when selected explicitly.
    """
    models_cfg = config.get("models", {}).get("llm", {})
    active = models_cfg.get("active_provider", "mock")
    providers = models_cfg.get("providers", {})
    active_cfg = providers.get(active, {})
    provider_type = active_cfg.get("type", active)

    if provider_type == "mock":
        return MockProvider()
    if provider_type not in _KEY_ENV:
        raise ConfigurationError(f"Unknown LLM provider: {provider_type!r}")

    key_env = active_cfg.get("api_key_env", _KEY_ENV[provider_type])
    api_key = os.getenv(key_env)
    if not api_key:
        raise ConfigurationError(f"{provider_type} provider selected but {key_env} is not set")

    timeout = float(active_cfg.get("timeout_seconds", 120))
    temperature = active_cfg.get("temperature")
    policy = reasoning_policy(config)
    if provider_type == "groq":
        return GroqProvider(
            api_key=api_key,
            model=active_cfg.get("model", "llama-3.3-70b-versatile"),
            timeout=timeout,
            temperature=temperature,
            policy=policy,
        )
    return OpenAIProvider(
        api_key=api_key,
        model=active_cfg.get("model", "gpt-4o-mini"),
        base_url=active_cfg.get("base_url"),
        timeout=timeout,
        temperature=temperature,
        policy=policy,
    )
