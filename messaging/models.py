"""Operator command and queue message models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class CommandType(str, Enum):
    UPDATE_PROMPT = "UpdatePrompt"
    PAUSE_AGENT = "PauseAgent"
    RESUME_AGENT = "ResumeAgent"
    TRIGGER_BATCH_LEARNING = "TriggerBatchLearning"
    TRIGGER_MEMORY_CONSOLIDATION = "TriggerMemoryConsolidation"
    APPROVE_CODE_CHANGE = "ApproveCodeChange"
    REJECT_CODE_CHANGE = "RejectCodeChange"
    ADD_GOAL = "AddGoal"
    REMOVE_GOAL = "RemoveGoal"
    QUERY_STATE = "QueryState"
    RESET_MEMORY = "ResetMemory"
    CHAT_WITH_AGENT = "ChatWithAgent"


# Kinds handled by other consumers of the shared steering queue.
FOREIGN_COMMANDS = frozenset(
    {
        CommandType.CHAT_WITH_AGENT,
        CommandType.APPROVE_CODE_CHANGE,
        CommandType.REJECT_CODE_CHANGE,
        CommandType.RESET_MEMORY,
    }
)


class HumanInput(BaseModel):
    """A steering command submitted by an operator."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    type: CommandType
    content: str = ""
    user_id: str | None = None
    processed: bool = False
    parameters: dict[str, str] = Field(default_factory=dict)


class CommandResponse(BaseModel):
    id: str
    success: bool
    message: str = ""
    data: dict[str, Any] = Field(default_factory=dict)


class QueueMessage(BaseModel):
    """A leased message as returned by ``receive``."""

    message_id: str
    pop_receipt: str
    content: str
    dequeue_count: int = 0
    inserted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
