"""Long-term memory entry model."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


ACTIVITY_TAG = "activity"
CONSOLIDATED_TAG = "consolidated"
LEARNING_TAG = "learning"


class MemoryType(str, Enum):
    """Closed set of long-term memory kinds."""

    OBSERVATION = "Observation"
    LEARNING = "Learning"
    CODE_CHANGE = "CodeChange"
    DECISION = "Decision"
    REFLECTION = "Reflection"
    ERROR = "Error"
    SUCCESS = "Success"


def new_memory_id(now: datetime | None = None) -> str:
    """Time-sortable identifier: UTC timestamp plus a random suffix."""
    stamp = (now or datetime.now(UTC)).strftime("%Y%m%d%H%M%S%f")
    return f"{stamp}-{uuid.uuid4().hex[:12]}"


class MemoryEntry(BaseModel):
    """Unit of durable knowledge."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=new_memory_id, frozen=True)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    type: MemoryType = MemoryType.OBSERVATION
    content: str = ""
    summary: str = ""
    metadata: dict[str, str] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    importance: float = 0.5
    access_count: int = 0
    last_accessed: datetime | None = None

    @field_validator("importance", mode="before")
    @classmethod
    def _clamp_importance(cls, value: object) -> float:
        try:
            score = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.5
        return max(0.0, min(1.0, score))

    @field_validator("timestamp", "last_accessed")
    @classmethod
    def _ensure_utc(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
