"""In-process queue with the same lease semantics as the durable one."""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from messaging.base_queue import MessageQueue
from messaging.models import QueueMessage


@dataclass
class _Stored:
    message_id: str
    content: str
    inserted_at: datetime
    visible_at: datetime
    dequeue_count: int = 0
    pop_receipt: str | None = None


class InMemoryMessageQueue(MessageQueue):
    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self.clock = clock or (lambda: datetime.now(UTC))
        self._lock = threading.Lock()
        self._messages: dict[str, _Stored] = {}

    def send(self, content: str, delay: timedelta | None = None) -> str:
        now = self.clock()
        message_id = uuid.uuid4().hex
        with self._lock:
            self._messages[message_id] = _Stored(
                message_id=message_id,
                content=content,
                inserted_at=now,
                visible_at=now + (delay or timedelta(0)),
            )
        return message_id

    def receive(
        self, max_messages: int = 10, visibility_timeout: timedelta = timedelta(seconds=30)
    ) -> list[QueueMessage]:
        now = self.clock()
        leased: list[QueueMessage] = []
        with self._lock:
            ordered = sorted(self._messages.values(), key=lambda m: m.inserted_at)
            for stored in ordered:
                if len(leased) >= max_messages:
                    break
                if stored.visible_at > now:
                    continue
                stored.dequeue_count += 1
                stored.pop_receipt = uuid.uuid4().hex
                stored.visible_at = now + visibility_timeout
                leased.append(
                    QueueMessage(
                        message_id=stored.message_id,
                        pop_receipt=stored.pop_receipt,
                        content=stored.content,
                        dequeue_count=stored.dequeue_count,
                        inserted_at=stored.inserted_at,
                    )
                )
        return leased

    def delete(self, message_id: str, pop_receipt: str) -> bool:
        with self._lock:
            stored = self._messages.get(message_id)
            if stored is None or stored.pop_receipt != pop_receipt:
                return False
            del self._messages[message_id]
            return True

    def update_visibility(
        self, message_id: str, pop_receipt: str, visibility_timeout: timedelta
    ) -> str | None:
        with self._lock:
            stored = self._messages.get(message_id)
            if stored is None or stored.pop_receipt != pop_receipt:
                return None
            stored.pop_receipt = uuid.uuid4().hex
            stored.visible_at = self.clock() + visibility_timeout
            return stored.pop_receipt

    def approximate_count(self) -> int:
        with self._lock:
            return len(self._messages)

    def clear(self) -> int:
        with self._lock:
            removed = len(self._messages)
            self._messages.clear()
            return removed
