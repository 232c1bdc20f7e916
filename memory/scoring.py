"""Importance scoring for promotion, retention and context selection."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from core.agent_models import ActionStatus, AgentAction, AgentThought, ThoughtType
from memory.types import MemoryEntry

THOUGHT_BASE_SCORES: dict[ThoughtType, float] = {
    ThoughtType.OBSERVATION: 0.3,
    ThoughtType.PLANNING: 0.5,
    ThoughtType.REASONING: 0.7,
    ThoughtType.DECISION: 0.7,
    ThoughtType.REFLECTION: 0.8,
}

ACTION_BASE_SCORES: dict[ActionStatus, float] = {
    ActionStatus.PENDING: 0.3,
    ActionStatus.RUNNING: 0.4,
    ActionStatus.FAILED: 0.6,
    ActionStatus.COMPLETED: 0.7,
}

LENGTH_BONUS_CAP = 0.2
LENGTH_BONUS_DIVISOR = 5000.0
OUTPUT_BONUS = 0.1
RECENCY_WINDOW = timedelta(days=7)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def thought_importance(thought: AgentThought) -> float:
    """Base score by thought kind plus a bonus for longer content."""
    base = THOUGHT_BASE_SCORES.get(thought.type, 0.5)
    bonus = min(LENGTH_BONUS_CAP, len(thought.content) / LENGTH_BONUS_DIVISOR)
    return clamp(base + bonus)


def action_importance(action: AgentAction) -> float:
    """Base score by action status plus a bonus when it produced output."""
    base = ACTION_BASE_SCORES.get(action.status, 0.3)
    if action.output:
        base += OUTPUT_BONUS
    return clamp(base)


def recency_bonus(timestamp: datetime, now: datetime | None = None) -> float:
    """1.0 inside the recency window, otherwise 0.0."""
    now = now or datetime.now(UTC)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    return 1.0 if now - timestamp <= RECENCY_WINDOW else 0.0


def context_weight(entry: MemoryEntry, now: datetime | None = None) -> float:
    """Ranking weight for prompt context selection."""
    return entry.importance * 0.7 + recency_bonus(entry.timestamp, now) * 0.3
