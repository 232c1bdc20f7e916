"""Render accumulated memories as a prompt section."""

from __future__ import annotations

from collections import defaultdict
from datetime import UTC, datetime

from memory.types import MemoryEntry, MemoryType

EMPTY_CONTEXT = "No previous memories available yet. This may be your first iteration."
DETAIL_IMPORTANCE = 0.8

_GROUP_PRIORITY = {
    MemoryType.LEARNING: 5,
    MemoryType.REFLECTION: 4,
    MemoryType.SUCCESS: 3,
    MemoryType.DECISION: 2,
}


def _age(entry: MemoryEntry, now: datetime) -> str:
    hours = max(0.0, (now - entry.timestamp).total_seconds() / 3600.0)
    return f"{hours:.0f}h ago" if hours < 24 else f"{hours / 24:.0f}d ago"


def build_memory_context(
    memories: list[MemoryEntry],
    now: datetime | None = None,
    per_group: int = 5,
    detail_chars: int = 200,
) -> str:
    """Group memories by kind, most valuable kinds first."""
    if not memories:
        return EMPTY_CONTEXT
    now = now or datetime.now(UTC)
    groups: dict[MemoryType, list[MemoryEntry]] = defaultdict(list)
    for entry in memories:
        groups[entry.type].append(entry)

    lines: list[str] = []
    ordered = sorted(groups.items(), key=lambda item: _GROUP_PRIORITY.get(item[0], 1), reverse=True)
    for kind, entries in ordered:
        lines.append(f"\n### {kind.value} ({len(entries)} entries):")
        for entry in sorted(entries, key=lambda e: e.importance, reverse=True)[:per_group]:
            lines.append(f"- [{_age(entry, now)}, importance: {entry.importance:.2f}] {entry.summary}")
            if (
                entry.importance >= DETAIL_IMPORTANCE
                and entry.content
                and entry.content != entry.summary
            ):
                preview = entry.content
                if len(preview) > detail_chars:
                    preview = preview[:detail_chars] + "..."
                lines.append(f"  Details: {preview}")
    return "\n".join(lines)
