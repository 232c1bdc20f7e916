"""Scheduled batch learning over recent long-term memories."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from memory.consolidation.consolidator import MemoryConsolidationEngine

logger = logging.getLogger("autoloop.batch_learning")


@dataclass(frozen=True)
class BatchLearningStats:
    last_run: datetime
    last_cleanup: datetime
    is_running: bool
    since_last_run: timedelta


class BatchLearningScheduler:
    """Runs learning extraction every N iterations or after a wall-clock interval.

    Runs are mutually exclusive; a trigger arriving during a run is dropped.
    """

    def __init__(
        self,
        engine: MemoryConsolidationEngine,
        iteration_threshold: int = 100,
        interval: timedelta = timedelta(hours=4),
        cleanup_interval: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.engine = engine
        self.iteration_threshold = iteration_threshold
        self.interval = interval
        self.cleanup_interval = cleanup_interval
        self.clock = clock or (lambda: datetime.now(UTC))
        now = self.clock()
        self.last_run = now
        self.last_cleanup = now
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def should_run(self, iterations_since_last: int) -> bool:
        if iterations_since_last >= self.iteration_threshold:
            return True
        return self.clock() - self.last_run > self.interval

    def run(self) -> dict[str, Any]:
        """Extract and store learnings; clean up when the cleanup interval elapsed."""
        if not self._lock.acquire(blocking=False):
            logger.warning("Batch learning already running, skipping")
            return {"skipped": True}
        try:
            return self._run()
        except Exception:
            logger.exception("Error during batch learning process")
            return {"skipped": False, "error": True}
        finally:
            self._lock.release()

    def _run(self) -> dict[str, Any]:
        started = self.clock()
        logger.info("Starting batch learning process")
        learnings = self.engine.extract_learnings(self.last_run)
        stored = sum(1 for learning in learnings if self.engine.store_learning(learning))

        deleted = 0
        if started - self.last_cleanup > self.cleanup_interval:
            logger.info("Running memory cleanup")
            deleted = self.engine.cleanup_outdated()
            self.last_cleanup = started

        total = self.engine.long_term.count()
        self.last_run = started
        elapsed_ms = (self.clock() - started).total_seconds() * 1000
        logger.info(
            "Batch learning completed in %.0fms. Total memories: %d, learnings stored: %d",
            elapsed_ms,
            total,
            stored,
        )
        return {
            "skipped": False,
            "learnings": stored,
            "deleted": deleted,
            "total_memories": total,
        }

    def stats(self) -> BatchLearningStats:
        return BatchLearningStats(
            last_run=self.last_run,
            last_cleanup=self.last_cleanup,
            is_running=self.is_running,
            since_last_run=self.clock() - self.last_run,
        )
