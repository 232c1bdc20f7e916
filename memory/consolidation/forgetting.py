"""Retention policy for long-term memories."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from memory.types import MemoryEntry, MemoryType


@dataclass(frozen=True)
class ForgettingPolicy:
    """Decides which entries are outdated.

    An entry is outdated when it is old and rarely accessed, when its
    importance is low, or when it is an error old enough to be presumed
    resolved.
    """

    stale_after: timedelta = timedelta(days=30)
    min_access_count: int = 3
    min_importance: float = 0.3
    error_resolved_after: timedelta = timedelta(days=7)

    def reason(self, entry: MemoryEntry, now: datetime) -> str | None:
        """Return why the entry is outdated, or None to keep it."""
        age = now - entry.timestamp
        if age > self.stale_after and entry.access_count < self.min_access_count:
            return "stale"
        if entry.importance < self.min_importance:
            return "low-importance"
        if entry.type == MemoryType.ERROR and age > self.error_resolved_after:
            return "resolved-error"
        return None

    def is_outdated(self, entry: MemoryEntry, now: datetime) -> bool:
        return self.reason(entry, now) is not None
