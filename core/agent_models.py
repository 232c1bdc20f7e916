"""Agent state, thought and action models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> datetime:
    return datetime.now(UTC)


class AgentStatus(str, Enum):
    IDLE = "Idle"
    THINKING = "Thinking"
    ACTING = "Acting"
    PAUSED = "Paused"
    THROTTLED = "Throttled"
    ERROR = "Error"


class ThoughtType(str, Enum):
    OBSERVATION = "Observation"
    PLANNING = "Planning"
    REASONING = "Reasoning"
    DECISION = "Decision"
    REFLECTION = "Reflection"


class ActionStatus(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"


TERMINAL_ACTION_STATUSES = frozenset({ActionStatus.COMPLETED, ActionStatus.FAILED})


class ToolInvocation(BaseModel):
    """Metadata about one tool call performed by the reasoning engine."""

    name: str
    arguments: str | None = None
    result: str | None = None
    success: bool = True
    duration_ms: float | None = None


class AgentThought(BaseModel):
    id: str = Field(default_factory=_new_id)
    timestamp: datetime = Field(default_factory=_utc_now)
    content: str = ""
    type: ThoughtType = ThoughtType.OBSERVATION
    tool_invocations: list[ToolInvocation] = Field(default_factory=list)


class AgentAction(BaseModel):
    id: str = Field(default_factory=_new_id)
    timestamp: datetime = Field(default_factory=_utc_now)
    name: str = ""
    description: str = ""
    input: str = ""
    output: str | None = None
    status: ActionStatus = ActionStatus.PENDING
    tool_invocations: list[ToolInvocation] = Field(default_factory=list)


class AgentState(BaseModel):
    """Snapshot published to observers; rebuilt on every mutation."""

    id: str = Field(default_factory=_new_id)
    last_updated: datetime = Field(default_factory=_utc_now)
    current_goal: str = ""
    status: AgentStatus = AgentStatus.IDLE
    current_prompt: str | None = None
    recent_thoughts: list[AgentThought] = Field(default_factory=list)
    recent_actions: list[AgentAction] = Field(default_factory=list)
