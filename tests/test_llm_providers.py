"""Reasoning-engine adapter and factory tests."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from core.errors import ConfigurationError, ReasoningEngineError
from core.resilience import reasoning_policy
from llm.base_llm import Conversation
from llm.llm_factory import build_llm
from llm.providers.groq_provider import GroqProvider
from llm.providers.mock_provider import MockProvider
from llm.providers.openai_provider import OpenAIProvider
from llm.response_parsing import parse_action_plan, parse_learning


def llm_config(provider: str, **provider_cfg: Any) -> dict[str, Any]:
    return {
        "models": {"llm": {"active_provider": provider, "providers": {provider: provider_cfg}}},
        "resilience": {"llm": {"max_retries": 2, "initial_delay_seconds": 0.0}},
    }


def test_factory_builds_mock_only_when_selected() -> None:
    assert isinstance(build_llm(llm_config("mock", type="mock")), MockProvider)


def test_factory_rejects_unknown_provider() -> None:
    with pytest.raises(ConfigurationError):
        build_llm(llm_config("carrier-pigeon"))


def test_factory_requires_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ConfigurationError):
        build_llm(llm_config("openai", type="openai"))


def test_factory_builds_configured_providers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("CUSTOM_GROQ_KEY", "gsk-test")

    openai_llm = build_llm(llm_config("openai", type="openai", model="gpt-4o"))
    groq_llm = build_llm(llm_config("groq", type="groq", api_key_env="CUSTOM_GROQ_KEY"))

    assert isinstance(openai_llm, OpenAIProvider) and openai_llm.model == "gpt-4o"
    assert isinstance(groq_llm, GroqProvider) and groq_llm.provider_name == "groq"
    assert openai_llm.policy.max_retries == 2


class ServiceUnavailable(Exception):
    status_code = 503


def fake_client(responses: list[Any]) -> SimpleNamespace:
    calls: list[dict[str, Any]] = []

    def create(**kwargs: Any) -> Any:
        calls.append(kwargs)
        item = responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)), calls=calls)


def completion(content: str, tool_calls: Any = None) -> SimpleNamespace:
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def build_provider(responses: list[Any]) -> OpenAIProvider:
    policy = reasoning_policy({"resilience": {"llm": {"max_retries": 2}}}, sleep=lambda _: None)
    provider = OpenAIProvider(api_key="sk-test", policy=policy)
    provider.client = fake_client(responses)  # type: ignore[assignment]
    return provider


def test_openai_provider_decodes_text_and_tool_calls() -> None:
    tool_call = SimpleNamespace(function=SimpleNamespace(name="web_search", arguments='{"q": "x"}'))
    provider = build_provider([completion("answer", [tool_call])])

    result = provider.ask("question")
    assert result.text == "answer"
    assert [item.name for item in result.tool_invocations] == ["web_search"]


def test_openai_provider_retries_transient_status_then_gives_up() -> None:
    provider = build_provider([ServiceUnavailable(), completion("recovered")])
    assert provider.chat([{"role": "user", "content": "hi"}]) == "recovered"

    failing = build_provider([ServiceUnavailable() for _ in range(5)])
    with pytest.raises(ReasoningEngineError):
        failing.chat([{"role": "user", "content": "hi"}])
    assert len(failing.client.calls) == 3  # type: ignore[attr-defined]


def test_conversation_threads_history_and_stays_bounded() -> None:
    provider = build_provider([completion("one"), completion("two"), completion("three")])
    conversation = Conversation(system_prompt="be brief", max_messages=4)

    provider.ask("first", conversation)
    provider.ask("second", conversation)
    provider.ask("third", conversation)

    last_messages = provider.client.calls[-1]["messages"]  # type: ignore[attr-defined]
    assert last_messages[0] == {"role": "system", "content": "be brief"}
    assert last_messages[-1] == {"role": "user", "content": "third"}
    assert len(conversation) == 4


def test_mock_provider_speaks_agent_protocols() -> None:
    mock = MockProvider()
    plan = parse_action_plan(
        mock.chat(
            [
                {
                    "role": "user",
                    "content": "Your current directive is: improve caching\n"
                    "## YOUR ACCUMULATED KNOWLEDGE (0 memories loaded):",
                }
            ]
        )
    )
    assert plan is not None and plan.actions
    assert "caching" in plan.actions[0].goal  # type: ignore[operator]

    execution = mock.chat([{"role": "user", "content": "Action to Execute: Review notes"}])
    assert "Review notes" in execution

    learning = parse_learning(
        mock.chat([{"role": "user", "content": "extract key learnings\nMemories to analyze:\nuploads"}]),
        ["a"],
    )
    assert learning is not None and learning.confidence == 0.6
