"""Rolling agent state with best-effort mirroring into the memory tiers."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict, deque
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import UTC, datetime, timedelta
from typing import Any

from core.agent_models import (
    TERMINAL_ACTION_STATUSES,
    ActionStatus,
    AgentAction,
    AgentState,
    AgentStatus,
    AgentThought,
)
from core.event_bus import EventBus
from memory.long_term import LongTermMemory
from memory.stores.cache import ShortTermMemory
from memory.types import ACTIVITY_TAG, MemoryEntry, MemoryType

logger = logging.getLogger("autoloop.state")

STATE_KEY = "agent:current-state"
STATE_CHANGED = "state_changed"
ACTIVITY_IMPORTANCE = 0.25


def thought_key(thought_id: str) -> str:
    return f"thought:{thought_id}"


def action_key(action_id: str) -> str:
    return f"action:{action_id}"


class StateBroadcaster:
    """Owns the agent's live state.

    Every mutation updates the ring buffers under one lock, rebuilds the
    snapshot and publishes it on the event bus. Mirroring into short-term and
    long-term memory runs on background executors and never raises into the
    caller. Short-term mirror writes are queued under the state lock onto a
    single worker, so later states of a key always land last. In-flight
    mirror writes are lost on shutdown.
    """

    def __init__(
        self,
        short_term: ShortTermMemory | None = None,
        long_term: LongTermMemory | None = None,
        event_bus: EventBus | None = None,
        max_thoughts: int = 100,
        max_actions: int = 50,
        snapshot_thoughts: int = 20,
        snapshot_actions: int = 10,
        item_ttl: timedelta = timedelta(hours=24),
        state_ttl: timedelta = timedelta(hours=1),
        persist_workers: int = 2,
    ) -> None:
        self.short_term = short_term
        self.long_term = long_term
        self.event_bus = event_bus or EventBus()
        self.snapshot_thoughts = snapshot_thoughts
        self.snapshot_actions = snapshot_actions
        self.item_ttl = item_ttl
        self.state_ttl = state_ttl
        self._lock = threading.Lock()
        self._pending_lock = threading.Lock()
        self._thoughts: deque[AgentThought] = deque(maxlen=max_thoughts)
        self._actions: OrderedDict[str, AgentAction] = OrderedDict()
        self._max_actions = max_actions
        self._state = AgentState()
        self._mirror_executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="state-mirror"
        )
        self._activity_executor = ThreadPoolExecutor(
            max_workers=max(1, persist_workers), thread_name_prefix="state-persist"
        )
        self._pending: set[Future[Any]] = set()

    # ── Mutations ────────────────────────────────────────────────────

    def add_thought(self, thought: AgentThought) -> None:
        with self._lock:
            self._thoughts.append(thought)
            snapshot = self._rebuild()
            self._mirror(self._mirror_item, thought_key(thought.id), thought)
        self._publish(snapshot)
        self._record(self._thought_entry(thought))

    def add_action(self, action: AgentAction) -> None:
        with self._lock:
            self._actions[action.id] = action
            self._actions.move_to_end(action.id)
            while len(self._actions) > self._max_actions:
                self._actions.popitem(last=False)
            snapshot = self._rebuild()
            self._mirror(self._mirror_item, action_key(action.id), action)
        self._publish(snapshot)

    def update_action(self, action: AgentAction) -> None:
        """Replace a tracked action in place, keeping its position."""
        with self._lock:
            self._actions[action.id] = action
            while len(self._actions) > self._max_actions:
                self._actions.popitem(last=False)
            snapshot = self._rebuild()
            self._mirror(self._mirror_item, action_key(action.id), action)
        self._publish(snapshot)
        if action.status in TERMINAL_ACTION_STATUSES:
            self._record(self._action_entry(action))

    def update_status(self, status: AgentStatus) -> None:
        with self._lock:
            self._state.status = status
            snapshot = self._rebuild()
        self._publish(snapshot)

    def update_goal(self, goal: str) -> None:
        with self._lock:
            changed = self._state.current_goal != goal
            self._state.current_goal = goal
            snapshot = self._rebuild()
        self._publish(snapshot)
        if changed and goal:
            self._record(
                self._activity_entry(MemoryType.DECISION, f"Goal set: {goal}", goal, ["goal"])
            )

    def update_prompt(self, prompt: str) -> None:
        with self._lock:
            changed = self._state.current_prompt != prompt
            self._state.current_prompt = prompt
            snapshot = self._rebuild()
        self._publish(snapshot)
        if changed:
            self._record(
                self._activity_entry(
                    MemoryType.DECISION, "Directive updated", prompt, ["directive"]
                )
            )

    # ── Reads ────────────────────────────────────────────────────────

    def get_current_state(self) -> AgentState:
        """Return the latest published snapshot (a copy, safe to hold)."""
        with self._lock:
            return self._state.model_copy(deep=True)

    @property
    def status(self) -> AgentStatus:
        with self._lock:
            return self._state.status

    def all_thoughts(self) -> list[AgentThought]:
        with self._lock:
            return list(self._thoughts)

    def all_actions(self) -> list[AgentAction]:
        with self._lock:
            return list(self._actions.values())

    def get_action(self, action_id: str) -> AgentAction | None:
        with self._lock:
            return self._actions.get(action_id)

    # ── Internals ────────────────────────────────────────────────────

    def _rebuild(self) -> AgentState:
        """Recompute the snapshot and queue its mirror write. Caller holds the lock."""
        thoughts = list(self._thoughts)[-self.snapshot_thoughts :] if self.snapshot_thoughts else []
        actions = list(self._actions.values())[-self.snapshot_actions :] if self.snapshot_actions else []
        self._state = self._state.model_copy(
            update={
                "recent_thoughts": thoughts,
                "recent_actions": actions,
                "last_updated": datetime.now(UTC),
            }
        )
        snapshot = self._state.model_copy(deep=True)
        self._mirror(self._mirror_state, snapshot)
        return snapshot

    def _publish(self, snapshot: AgentState) -> None:
        self.event_bus.emit(STATE_CHANGED, {"state": snapshot})

    def _mirror(self, fn: Callable[..., None], *args: Any) -> None:
        self._submit(self._mirror_executor, fn, *args)

    def _record(self, entry: MemoryEntry) -> None:
        self._submit(self._activity_executor, self._store_activity, entry)

    def _submit(
        self, executor: ThreadPoolExecutor, fn: Callable[..., None], *args: Any
    ) -> None:
        try:
            future = executor.submit(self._guarded, fn, *args)
        except RuntimeError:
            # Executor already shut down.
            return
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future[Any]) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    @staticmethod
    def _guarded(fn: Callable[..., None], *args: Any) -> None:
        try:
            fn(*args)
        except Exception:
            logger.warning("State mirroring failed in %s", fn.__name__, exc_info=True)

    def _mirror_item(self, key: str, item: AgentThought | AgentAction) -> None:
        if self.short_term is not None:
            self.short_term.set(key, item, self.item_ttl)

    def _mirror_state(self, snapshot: AgentState) -> None:
        if self.short_term is not None:
            self.short_term.set(STATE_KEY, snapshot, self.state_ttl)

    def _store_activity(self, entry: MemoryEntry) -> None:
        if self.long_term is not None:
            self.long_term.store(entry)

    @staticmethod
    def _activity_entry(
        kind: MemoryType, summary: str, content: str, tags: list[str]
    ) -> MemoryEntry:
        return MemoryEntry(
            type=kind,
            content=content,
            summary=summary[:200],
            tags=[ACTIVITY_TAG, *tags],
            importance=ACTIVITY_IMPORTANCE,
        )

    def _thought_entry(self, thought: AgentThought) -> MemoryEntry:
        entry = self._activity_entry(
            MemoryType.OBSERVATION,
            f"{thought.type.value} thought",
            thought.content,
            ["thought", thought.type.value.lower()],
        )
        entry.metadata = {"thought_id": thought.id, "thought_type": thought.type.value}
        return entry

    def _action_entry(self, action: AgentAction) -> MemoryEntry:
        kind = MemoryType.SUCCESS if action.status == ActionStatus.COMPLETED else MemoryType.ERROR
        entry = self._activity_entry(
            kind,
            f"Action {action.name}: {action.status.value}",
            f"{action.description}\nInput: {action.input}\nOutput: {action.output or ''}",
            ["action", action.status.value.lower()],
        )
        entry.metadata = {"action_id": action.id, "action_status": action.status.value}
        return entry

    def drain(self, timeout: float | None = None) -> bool:
        """Wait for queued mirror writes; returns False on timeout."""
        with self._pending_lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self) -> None:
        """Stop accepting mirror writes without waiting for in-flight ones."""
        self._mirror_executor.shutdown(wait=False, cancel_futures=True)
        self._activity_executor.shutdown(wait=False, cancel_futures=True)
