"""Consolidated learning model."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class ConsolidatedLearning(BaseModel):
    """Higher-level knowledge summarized from a group of memories."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    topic: str = "General"
    summary: str = ""
    insights: dict[str, Any] = Field(default_factory=dict)
    confidence: float = 0.5
    source_memory_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: object) -> float:
        try:
            score = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.5
        return max(0.0, min(1.0, score))
