"""Summarizes groups of related memories into learnings."""

from __future__ import annotations

import json
import logging

from llm.base_llm import BaseLLM
from llm.response_parsing import parse_learning
from memory.types import ConsolidatedLearning, MemoryEntry

logger = logging.getLogger("autoloop.consolidation.learning")

FALLBACK_TOPIC = "General"
FALLBACK_CONFIDENCE = 0.5
EXCERPT_CONFIDENCE = 0.6

_LEARNING_PROMPT = """\
You are analyzing {count} memory entries to extract key learnings and patterns.

Memories to analyze:
{memories}

Please analyze these memories and provide:
1. A topic that these memories relate to
2. A summary of the key learning or pattern
3. Specific insights in JSON format
4. A confidence score (0.0 to 1.0)

Respond with ONLY a JSON object in this format:
{{
  "topic": "the main topic",
  "summary": "concise summary of the learning",
  "insights": {{
    "pattern": "description of any pattern found",
    "actionable": "actionable insight if any",
    "related_concepts": ["concept1", "concept2"]
  }},
  "confidence": 0.8
}}
"""


class LearningExtractor:
    """Asks the reasoning engine for a learning, with a deterministic fallback."""

    def __init__(self, llm: BaseLLM | None = None, content_chars: int = 1000) -> None:
        self.llm = llm
        self.content_chars = content_chars

    def build_prompt(self, memories: list[MemoryEntry]) -> str:
        payload = [
            {
                "type": entry.type.value,
                "summary": entry.summary,
                "content": entry.content[: self.content_chars],
                "timestamp": entry.timestamp.isoformat(),
                "tags": entry.tags,
            }
            for entry in memories
        ]
        return _LEARNING_PROMPT.format(count=len(memories), memories=json.dumps(payload, indent=2))

    def fallback(self, memories: list[MemoryEntry]) -> ConsolidatedLearning:
        return ConsolidatedLearning(
            topic=FALLBACK_TOPIC,
            summary=f"Consolidated {len(memories)} memories",
            confidence=FALLBACK_CONFIDENCE,
            source_memory_ids=[entry.id for entry in memories],
        )

    def extract(self, memories: list[MemoryEntry]) -> ConsolidatedLearning:
        """Summarize one group. Never raises for reasoning-engine failures."""
        if not memories:
            raise ValueError("No memories to consolidate")
        source_ids = [entry.id for entry in memories]
        if self.llm is None:
            return self.fallback(memories)
        try:
            response = self.llm.ask(self.build_prompt(memories)).text
        except Exception as exc:
            logger.error("Failed to consolidate memories with the reasoning engine: %s", exc)
            return self.fallback(memories)

        learning = parse_learning(response, source_ids)
        if learning is not None:
            logger.info("Created consolidated learning on topic: %s", learning.topic)
            return learning

        logger.warning("Failed to parse learning response, using fallback")
        excerpt = response.strip()[:200]
        if not excerpt:
            return self.fallback(memories)
        return ConsolidatedLearning(
            topic=FALLBACK_TOPIC,
            summary=excerpt,
            confidence=EXCERPT_CONFIDENCE,
            source_memory_ids=source_ids,
        )
