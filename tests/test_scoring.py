"""Importance scoring tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from core.agent_models import ActionStatus, AgentAction, AgentThought, ThoughtType
from memory.scoring import action_importance, context_weight, recency_bonus, thought_importance
from memory.types import MemoryEntry


def test_thought_scores_by_kind_with_length_bonus() -> None:
    assert thought_importance(AgentThought(type=ThoughtType.OBSERVATION, content="")) == 0.3
    assert thought_importance(AgentThought(type=ThoughtType.PLANNING, content="")) == 0.5
    assert thought_importance(AgentThought(type=ThoughtType.REFLECTION, content="")) == 0.8

    medium = AgentThought(type=ThoughtType.REASONING, content="x" * 500)
    assert abs(thought_importance(medium) - 0.8) < 1e-9

    huge = AgentThought(type=ThoughtType.REFLECTION, content="x" * 10_000)
    assert thought_importance(huge) == 1.0


def test_action_scores_by_status_with_output_bonus() -> None:
    assert action_importance(AgentAction(status=ActionStatus.PENDING)) == 0.3
    assert action_importance(AgentAction(status=ActionStatus.RUNNING)) == 0.4
    assert abs(action_importance(AgentAction(status=ActionStatus.FAILED, output="boom")) - 0.7) < 1e-9
    assert abs(action_importance(AgentAction(status=ActionStatus.COMPLETED, output="ok")) - 0.8) < 1e-9


def test_context_weight_prefers_recent_entries() -> None:
    now = datetime(2024, 3, 1, tzinfo=UTC)
    fresh = MemoryEntry(timestamp=now - timedelta(days=1), importance=0.5)
    stale = MemoryEntry(timestamp=now - timedelta(days=30), importance=0.5)

    assert recency_bonus(fresh.timestamp, now) == 1.0
    assert recency_bonus(stale.timestamp, now) == 0.0
    assert abs(context_weight(fresh, now) - 0.65) < 1e-9
    assert abs(context_weight(stale, now) - 0.35) < 1e-9
