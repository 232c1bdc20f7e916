"""Loads the agent's accumulated knowledge from long-term memory."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from memory.long_term import LongTermMemory
from memory.scoring import context_weight
from memory.types import ACTIVITY_TAG, MemoryEntry, MemoryType

logger = logging.getLogger("autoloop.memory.context")

# Kinds consulted for context, with how many of each to fetch.
CONTEXT_SOURCES: tuple[tuple[MemoryType, int], ...] = (
    (MemoryType.LEARNING, 10),
    (MemoryType.SUCCESS, 10),
    (MemoryType.REFLECTION, 5),
    (MemoryType.DECISION, 10),
)


class MemoryContextLoader:
    """Caches the top-N memories and refreshes them on a cadence."""

    def __init__(
        self,
        long_term: LongTermMemory,
        top_n: int = 20,
        refresh_iterations: int = 10,
        refresh_interval: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.long_term = long_term
        self.top_n = top_n
        self.refresh_iterations = refresh_iterations
        self.refresh_interval = refresh_interval
        self.clock = clock or (lambda: datetime.now(UTC))
        self.memories: list[MemoryEntry] = []
        self.last_loaded: datetime | None = None

    def load(self) -> list[MemoryEntry]:
        """Reload from long-term memory; keeps an empty context on failure."""
        try:
            candidates: list[MemoryEntry] = []
            counts: dict[str, int] = {}
            for kind, limit in CONTEXT_SOURCES:
                # Over-fetch: transient activity records are skipped.
                found = [
                    entry
                    for entry in self.long_term.by_type(kind, max_results=limit * 3)
                    if ACTIVITY_TAG not in entry.tags
                ][:limit]
                counts[kind.value] = len(found)
                candidates.extend(found)
            now = self.clock()
            candidates.sort(key=lambda entry: context_weight(entry, now), reverse=True)
            self.memories = candidates[: self.top_n]
            logger.info("Loaded %d memories for context: %s", len(self.memories), counts)
        except Exception:
            logger.exception("Failed to load recent memories, continuing with empty context")
            self.memories = []
        self.last_loaded = self.clock()
        return self.memories

    def due(self, iteration: int) -> bool:
        if self.last_loaded is None:
            return True
        if self.refresh_iterations and iteration % self.refresh_iterations == 0:
            return True
        return self.clock() - self.last_loaded >= self.refresh_interval
