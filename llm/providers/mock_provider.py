"""Deterministic local reasoning engine for offline runs."""

from __future__ import annotations

import json
import re
from collections import Counter

from llm.base_llm import BaseLLM

THINK_MARKER = "YOUR ACCUMULATED KNOWLEDGE"
ACTION_MARKER = "Action to Execute:"
LEARNING_MARKER = "extract key learnings"


class MockProvider(BaseLLM):
    """Rule-based responder that speaks the agent's JSON protocols."""

    @staticmethod
    def _tokenize(text: str) -> list[str]:
        return [token for token in re.split(r"[^a-zA-Z0-9]+", text.lower()) if len(token) > 3]

    @staticmethod
    def _summarize_tokens(tokens: list[str], max_items: int = 5) -> str:
        if not tokens:
            return "no salient terms detected"
        top = Counter(tokens).most_common(max_items)
        return ", ".join(term for term, _ in top)

    @staticmethod
    def _section(prompt: str, label: str) -> str:
        match = re.search(rf"{re.escape(label)}\s*(.+)", prompt)
        return match.group(1).strip() if match else ""

    def _plan(self, prompt: str) -> str:
        directive = self._section(prompt, "Your current directive is:") or "explore"
        terms = self._summarize_tokens(self._tokenize(directive), max_items=3)
        return json.dumps(
            {
                "reasoning": f"Following the directive, focusing on: {terms}.",
                "actions": [
                    {
                        "action": f"Review notes about {terms}",
                        "goal": f"Make progress on: {directive[:80]}",
                        "extra": "",
                    }
                ],
            }
        )

    def _execute(self, prompt: str) -> str:
        action = self._section(prompt, ACTION_MARKER) or "the requested action"
        return (
            f"Steps: considered '{action}'. "
            f"Observations: salient terms {self._summarize_tokens(self._tokenize(action))}. "
            "Next steps: continue with the current goal."
        )

    def _learning(self, prompt: str) -> str:
        terms = self._summarize_tokens(self._tokenize(prompt.split("Memories to analyze:")[-1]))
        return json.dumps(
            {
                "topic": terms.split(", ")[0] if terms else "General",
                "summary": f"Recurring themes: {terms}.",
                "insights": {"pattern": terms, "actionable": "", "related_concepts": []},
                "confidence": 0.6,
            }
        )

    def chat(self, messages: list[dict[str, str]], **kwargs: object) -> str:
        """Generate deterministic text from conversational messages."""
        _ = kwargs
        if not messages:
            return "No input received."
        user_messages = [m["content"] for m in messages if m.get("role") == "user"]
        prompt = user_messages[-1] if user_messages else messages[-1]["content"]

        if THINK_MARKER in prompt:
            return self._plan(prompt)
        if ACTION_MARKER in prompt:
            return self._execute(prompt)
        if LEARNING_MARKER in prompt:
            return self._learning(prompt)
        salient = self._summarize_tokens(self._tokenize(prompt))
        return f"Local fallback response. Salient terms: {salient}."
