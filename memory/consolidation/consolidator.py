"""Memory consolidation: promotion, learning extraction and eviction."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict, defaultdict
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from core.agent_models import ActionStatus, AgentAction, AgentThought, ThoughtType
from llm.base_llm import BaseLLM
from memory.consolidation.forgetting import ForgettingPolicy
from memory.consolidation.learning_extractor import LearningExtractor
from memory.long_term import LongTermMemory
from memory.scoring import action_importance, thought_importance
from memory.stores.cache import ShortTermMemory
from memory.types import (
    ACTIVITY_TAG,
    CONSOLIDATED_TAG,
    LEARNING_TAG,
    ConsolidatedLearning,
    MemoryEntry,
    MemoryType,
)

logger = logging.getLogger("autoloop.consolidation")

THOUGHT_KINDS: dict[ThoughtType, MemoryType] = {
    ThoughtType.OBSERVATION: MemoryType.OBSERVATION,
    ThoughtType.PLANNING: MemoryType.DECISION,
    ThoughtType.REASONING: MemoryType.DECISION,
    ThoughtType.DECISION: MemoryType.DECISION,
    ThoughtType.REFLECTION: MemoryType.REFLECTION,
}

ACTION_KINDS: dict[ActionStatus, MemoryType] = {
    ActionStatus.COMPLETED: MemoryType.SUCCESS,
    ActionStatus.FAILED: MemoryType.ERROR,
}


def marker_key(item_id: str) -> str:
    return f"consolidated:{item_id}"


def thought_to_entry(thought: AgentThought, importance: float) -> MemoryEntry:
    return MemoryEntry(
        timestamp=thought.timestamp,
        type=THOUGHT_KINDS.get(thought.type, MemoryType.OBSERVATION),
        content=thought.content,
        summary=thought.content[:100],
        metadata={"source": "thought", "source_id": thought.id, "thought_type": thought.type.value},
        tags=[CONSOLIDATED_TAG, "thought", thought.type.value.lower()],
        importance=importance,
    )


def action_to_entry(action: AgentAction, importance: float) -> MemoryEntry:
    content = f"{action.description}\nInput: {action.input}\nOutput: {action.output or ''}"
    return MemoryEntry(
        timestamp=action.timestamp,
        type=ACTION_KINDS.get(action.status, MemoryType.OBSERVATION),
        content=content,
        summary=f"{action.name}: {action.description}"[:100],
        metadata={"source": "action", "source_id": action.id, "action_status": action.status.value},
        tags=[CONSOLIDATED_TAG, "action", action.status.value.lower()],
        importance=importance,
    )


class MemoryConsolidationEngine:
    """Promotes important short-term items, distills learnings, evicts stale entries.

    ``consolidate_short_term`` is not re-entrant: a call made while another is
    running returns immediately with ``skipped`` set.
    """

    def __init__(
        self,
        short_term: ShortTermMemory,
        long_term: LongTermMemory,
        llm: BaseLLM | None = None,
        broadcaster: Any | None = None,
        promotion_threshold: float = 0.5,
        min_group_size: int = 3,
        forgetting: ForgettingPolicy | None = None,
        eviction_window_days: int = 90,
        marker_ttl: timedelta = timedelta(hours=24),
        learning_lookback: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.short_term = short_term
        self.long_term = long_term
        self.extractor = LearningExtractor(llm=llm)
        self.broadcaster = broadcaster
        self.promotion_threshold = promotion_threshold
        self.min_group_size = min_group_size
        self.forgetting = forgetting or ForgettingPolicy()
        self.eviction_window_days = eviction_window_days
        self.marker_ttl = marker_ttl
        self.learning_lookback = learning_lookback
        self.clock = clock or (lambda: datetime.now(UTC))
        self.last_consolidation: datetime | None = None
        self._run_lock = threading.Lock()
        self._promoted: OrderedDict[str, None] = OrderedDict()

    # ── Short-term promotion ─────────────────────────────────────────

    def _load_thoughts(self) -> list[AgentThought]:
        thoughts: list[AgentThought] = []
        try:
            keys = self.short_term.keys("thought:*")
            thoughts = self.short_term.get_many(keys, AgentThought)
        except Exception as exc:
            logger.warning("Reading thoughts from short-term memory failed: %s", exc)
        if not thoughts and self.broadcaster is not None:
            thoughts = self.broadcaster.all_thoughts()
        return thoughts

    def _load_actions(self) -> list[AgentAction]:
        actions: list[AgentAction] = []
        try:
            keys = self.short_term.keys("action:*")
            actions = self.short_term.get_many(keys, AgentAction)
        except Exception as exc:
            logger.warning("Reading actions from short-term memory failed: %s", exc)
        if not actions and self.broadcaster is not None:
            actions = self.broadcaster.all_actions()
        return actions

    def _already_promoted(self, item_id: str) -> bool:
        if item_id in self._promoted:
            return True
        try:
            return self.short_term.exists(marker_key(item_id))
        except Exception:
            return False

    def _mark_promoted(self, item_id: str) -> None:
        self._promoted[item_id] = None
        while len(self._promoted) > 5000:
            self._promoted.popitem(last=False)
        try:
            self.short_term.set(
                marker_key(item_id), {"promoted_at": self.clock().isoformat()}, self.marker_ttl
            )
        except Exception as exc:
            logger.debug("Could not write promotion marker for %s: %s", item_id, exc)

    def _promote(self, item_id: str, entry: MemoryEntry) -> bool:
        try:
            self.long_term.store(entry)
        except Exception as exc:
            logger.error("Failed to promote %s to long-term memory: %s", item_id, exc)
            return False
        self._mark_promoted(item_id)
        return True

    def consolidate_short_term(self) -> dict[str, Any]:
        """Promote items scoring at or above the threshold, then extract learnings."""
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Consolidation already running, skipping")
            return {"skipped": True}
        try:
            return self._consolidate()
        finally:
            self._run_lock.release()

    def _consolidate(self) -> dict[str, Any]:
        started = self.clock()
        logger.info("Starting short-term memory consolidation")
        try:
            self.short_term.purge_expired()
        except Exception as exc:
            logger.warning("Purging expired short-term entries failed: %s", exc)
        candidates: list[tuple[str, MemoryEntry]] = []
        scanned = 0

        for thought in self._load_thoughts():
            scanned += 1
            score = thought_importance(thought)
            if score >= self.promotion_threshold and not self._already_promoted(thought.id):
                candidates.append((thought.id, thought_to_entry(thought, score)))

        for action in self._load_actions():
            scanned += 1
            score = action_importance(action)
            if score >= self.promotion_threshold and not self._already_promoted(action.id):
                candidates.append((action.id, action_to_entry(action, score)))

        promoted = [entry for item_id, entry in candidates if self._promote(item_id, entry)]
        logger.info("Promoted %d of %d short-term items", len(promoted), scanned)

        since = self.last_consolidation or (started - self.learning_lookback)
        learnings = self._learn_from(promoted, since)
        stored = sum(1 for learning in learnings if self.store_learning(learning))
        self.last_consolidation = started
        return {
            "skipped": False,
            "scanned": scanned,
            "promoted": len(promoted),
            "learnings": stored,
        }

    # ── Learning extraction ──────────────────────────────────────────

    @staticmethod
    def _learnable(entry: MemoryEntry) -> bool:
        return entry.type != MemoryType.LEARNING and ACTIVITY_TAG not in entry.tags

    def _learn_from(self, promoted: list[MemoryEntry], since: datetime) -> list[ConsolidatedLearning]:
        pool: dict[str, MemoryEntry] = {entry.id: entry for entry in promoted}
        for entry in self.long_term.since(since):
            pool.setdefault(entry.id, entry)
        return self._group_and_extract(list(pool.values()))

    def extract_learnings(self, since: datetime) -> list[ConsolidatedLearning]:
        """Summarize entries created since ``since``, one learning per large-enough kind."""
        logger.info("Extracting learnings since %s", since.isoformat())
        memories = self.long_term.since(since)
        if not memories:
            logger.info("No memories found since %s", since.isoformat())
            return []
        return self._group_and_extract(memories)

    def _group_and_extract(self, memories: list[MemoryEntry]) -> list[ConsolidatedLearning]:
        groups: dict[MemoryType, list[MemoryEntry]] = defaultdict(list)
        for entry in memories:
            if self._learnable(entry):
                groups[entry.type].append(entry)

        learnings: list[ConsolidatedLearning] = []
        for kind, members in groups.items():
            if len(members) < self.min_group_size:
                continue
            try:
                learnings.append(self.consolidate_group(members))
            except Exception:
                logger.exception("Failed to create learning from %s memories", kind.value)
        logger.info("Extracted %d learnings", len(learnings))
        return learnings

    def consolidate_group(self, memories: list[MemoryEntry]) -> ConsolidatedLearning:
        logger.info("Consolidating %d memories", len(memories))
        return self.extractor.extract(memories)

    def store_learning(self, learning: ConsolidatedLearning) -> str | None:
        """Persist a learning as its own long-term entry."""
        entry = MemoryEntry(
            timestamp=self.clock(),
            type=MemoryType.LEARNING,
            content=learning.summary,
            summary=learning.topic,
            metadata={
                "learning_id": learning.id,
                "confidence": f"{learning.confidence:.2f}",
                "source_ids": ",".join(learning.source_memory_ids),
            },
            tags=[LEARNING_TAG, learning.topic],
            importance=learning.confidence,
        )
        try:
            self.long_term.store(entry)
        except Exception as exc:
            logger.error("Failed to store learning %s: %s", learning.id, exc)
            return None
        logger.info("Stored learning %s on topic %s", learning.id, learning.topic)
        return entry.id

    # ── Eviction ─────────────────────────────────────────────────────

    def identify_outdated(self) -> list[MemoryEntry]:
        now = self.clock()
        outdated = [
            entry
            for entry in self.long_term.iter_entries(self.eviction_window_days)
            if self.forgetting.is_outdated(entry, now)
        ]
        logger.info("Identified %d outdated memories", len(outdated))
        return outdated

    def cleanup_outdated(self) -> int:
        deleted = 0
        for entry in self.identify_outdated():
            try:
                if self.long_term.delete(entry.id, date_hint=entry.timestamp):
                    deleted += 1
            except Exception as exc:
                logger.error("Failed to delete memory %s: %s", entry.id, exc)
        logger.info("Cleaned up %d outdated memories", deleted)
        return deleted
