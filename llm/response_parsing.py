"""Defensive decoding of loosely-structured reasoning-engine output."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.agent_models import ToolInvocation
from memory.types import ConsolidatedLearning

logger = logging.getLogger("autoloop.llm.parsing")

_FENCE = re.compile(r"```(?:json)?\s*|```\s*")
_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class PlannedAction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    action: str = ""
    goal: str | None = None
    extra: str | None = None

    @field_validator("action", "goal", "extra", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return json.dumps(value, default=str)


class ActionPlan(BaseModel):
    """``{"reasoning": ..., "actions": [...]}`` as produced by the think step."""

    model_config = ConfigDict(extra="ignore")

    reasoning: str = ""
    actions: list[PlannedAction] = Field(default_factory=list)

    @field_validator("reasoning", mode="before")
    @classmethod
    def _reasoning_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value if isinstance(value, str) else json.dumps(value, default=str)


def _lower_keys(data: Any) -> Any:
    if isinstance(data, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_lower_keys(item) for item in data]
    return data


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the outermost JSON object embedded in text, if any."""
    cleaned = _FENCE.sub("", text or "").strip()
    match = _OBJECT.search(cleaned)
    candidate = match.group() if match else cleaned
    try:
        data = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def parse_action_plan(text: str) -> ActionPlan | None:
    """Decode an action plan; None when the response is not a plan."""
    data = extract_json_object(text)
    if data is None:
        return None
    data = _lower_keys(data)
    if "actions" not in data and "reasoning" not in data:
        return None
    actions = data.get("actions")
    if isinstance(actions, dict):
        data["actions"] = [actions]
    elif not isinstance(actions, list):
        data["actions"] = []
    data["actions"] = [item for item in data["actions"] if isinstance(item, dict)]
    try:
        return ActionPlan.model_validate(data)
    except ValidationError as exc:
        logger.debug("Action plan failed validation: %s", exc)
        return None


def parse_learning(text: str, source_ids: list[str]) -> ConsolidatedLearning | None:
    """Decode a learning summary; None when unusable."""
    data = extract_json_object(text)
    if data is None:
        return None
    data = _lower_keys(data)
    summary = data.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        return None
    insights = data.get("insights")
    if not isinstance(insights, dict):
        insights = {"notes": insights} if insights else {}
    topic = data.get("topic")
    return ConsolidatedLearning(
        topic=topic if isinstance(topic, str) and topic.strip() else "General",
        summary=summary.strip(),
        insights=insights,
        confidence=data.get("confidence", 0.5),
        source_memory_ids=list(source_ids),
    )


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def decode_tool_invocations(raw: Any) -> list[ToolInvocation]:
    """Decode tool-call metadata from a provider response.

    Accepts plain dicts or SDK objects exposing ``name``/``arguments`` either
    directly or under ``function``. Anything with an unexpected shape yields
    no invocations.
    """
    if not isinstance(raw, (list, tuple)):
        return []
    invocations: list[ToolInvocation] = []
    try:
        for item in raw:
            function = _field(item, "function")
            source = function if function is not None else item
            name = _field(source, "name")
            if not isinstance(name, str) or not name:
                continue
            success = _field(item, "success")
            duration = _field(item, "duration_ms")
            invocations.append(
                ToolInvocation(
                    name=name,
                    arguments=_as_text(_field(source, "arguments")),
                    result=_as_text(_field(item, "result")),
                    success=success if isinstance(success, bool) else True,
                    duration_ms=float(duration) if isinstance(duration, (int, float)) else None,
                )
            )
    except (TypeError, ValueError, ValidationError) as exc:
        logger.warning("Ignoring malformed tool-call metadata: %s", exc)
        return []
    return invocations
