"""Base reasoning-engine interface."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from core.agent_models import ToolInvocation


@dataclass
class ReasoningResult:
    """Completion text plus metadata about tools the engine invoked."""

    text: str
    tool_invocations: list[ToolInvocation] = field(default_factory=list)


class Conversation:
    """Bounded, thread-safe message history shared across ``ask`` calls."""

    def __init__(self, system_prompt: str | None = None, max_messages: int = 20) -> None:
        self.system_prompt = system_prompt
        self._history: deque[dict[str, str]] = deque(maxlen=max(2, max_messages))
        self._lock = threading.Lock()

    def messages_for(self, prompt: str) -> list[dict[str, str]]:
        with self._lock:
            history = list(self._history)
        messages: list[dict[str, str]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.extend(history)
        messages.append({"role": "user", "content": prompt})
        return messages

    def record(self, prompt: str, reply: str) -> None:
        with self._lock:
            self._history.append({"role": "user", "content": prompt})
            self._history.append({"role": "assistant", "content": reply})

    def __len__(self) -> int:
        with self._lock:
            return len(self._history)


class BaseLLM(ABC):
    """Abstract LLM provider interface."""

    @abstractmethod
    def chat(self, messages: list[dict[str, str]], **kwargs: Any) -> str:
        """Return assistant response text for a message list."""

    def complete(self, messages: list[dict[str, str]]) -> ReasoningResult:
        """Providers that surface tool-call metadata override this."""
        return ReasoningResult(text=self.chat(messages))

    def ask(self, prompt: str, conversation: Conversation | None = None) -> ReasoningResult:
        """Send one prompt, threading it through the conversation when given."""
        if conversation is None:
            return self.complete([{"role": "user", "content": prompt}])
        result = self.complete(conversation.messages_for(prompt))
        conversation.record(prompt, result.text)
        return result
