"""SQLAlchemy-backed durable queue."""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, func, select

from core.resilience import RetryPolicy, storage_policy
from memory.schemas import QueueMessageRecord
from memory.stores.sql_store import SQLStore
from messaging.base_queue import MessageQueue
from messaging.models import QueueMessage

logger = logging.getLogger("autoloop.queue")


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on round-trip.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class SQLMessageQueue(MessageQueue):
    """Queue stored in the ``queue_messages`` table, created lazily on first use."""

    def __init__(
        self,
        sql_store: SQLStore,
        queue_name: str = "human-input",
        policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.sql_store = sql_store
        self.queue_name = queue_name
        self.policy = policy or storage_policy()
        self.clock = clock or (lambda: datetime.now(UTC))
        self._ready = False
        self._init_lock = threading.Lock()

    def _ensure_ready(self) -> None:
        if self._ready:
            return
        with self._init_lock:
            if not self._ready:
                self.policy.call(self.sql_store.create_all)
                self._ready = True
                logger.info("Queue %s ready", self.queue_name)

    def send(self, content: str, delay: timedelta | None = None) -> str:
        self._ensure_ready()
        message_id = uuid.uuid4().hex
        now = self.clock()

        def _send() -> None:
            with self.sql_store.session() as sess:
                sess.add(
                    QueueMessageRecord(
                        queue_name=self.queue_name,
                        message_id=message_id,
                        content=content,
                        inserted_at=now,
                        visible_at=now + (delay or timedelta(0)),
                    )
                )

        self.policy.call(_send)
        logger.debug("Sent message %s to %s", message_id, self.queue_name)
        return message_id

    def receive(
        self, max_messages: int = 10, visibility_timeout: timedelta = timedelta(seconds=30)
    ) -> list[QueueMessage]:
        self._ensure_ready()

        def _receive() -> list[QueueMessage]:
            now = self.clock()
            leased: list[QueueMessage] = []
            with self.sql_store.session() as sess:
                stmt = (
                    select(QueueMessageRecord)
                    .where(
                        QueueMessageRecord.queue_name == self.queue_name,
                        QueueMessageRecord.visible_at <= now,
                    )
                    .order_by(QueueMessageRecord.inserted_at, QueueMessageRecord.id)
                    .limit(max_messages)
                )
                for row in sess.scalars(stmt):
                    row.dequeue_count += 1
                    row.pop_receipt = uuid.uuid4().hex
                    row.visible_at = now + visibility_timeout
                    leased.append(
                        QueueMessage(
                            message_id=row.message_id,
                            pop_receipt=row.pop_receipt,
                            content=row.content,
                            dequeue_count=row.dequeue_count,
                            inserted_at=_aware(row.inserted_at),
                        )
                    )
            return leased

        return self.policy.call(_receive)

    def delete(self, message_id: str, pop_receipt: str) -> bool:
        self._ensure_ready()

        def _delete() -> bool:
            with self.sql_store.session() as sess:
                result = sess.execute(
                    delete(QueueMessageRecord).where(
                        QueueMessageRecord.message_id == message_id,
                        QueueMessageRecord.pop_receipt == pop_receipt,
                    )
                )
                return bool(result.rowcount)

        return self.policy.call(_delete)

    def update_visibility(
        self, message_id: str, pop_receipt: str, visibility_timeout: timedelta
    ) -> str | None:
        self._ensure_ready()

        def _update() -> str | None:
            with self.sql_store.session() as sess:
                row = sess.scalars(
                    select(QueueMessageRecord).where(
                        QueueMessageRecord.message_id == message_id,
                        QueueMessageRecord.pop_receipt == pop_receipt,
                    )
                ).first()
                if row is None:
                    return None
                row.pop_receipt = uuid.uuid4().hex
                row.visible_at = self.clock() + visibility_timeout
                return row.pop_receipt

        return self.policy.call(_update)

    def approximate_count(self) -> int:
        self._ensure_ready()

        def _count() -> int:
            with self.sql_store.session() as sess:
                stmt = select(func.count()).select_from(QueueMessageRecord).where(
                    QueueMessageRecord.queue_name == self.queue_name
                )
                return int(sess.scalar(stmt) or 0)

        return self.policy.call(_count)

    def clear(self) -> int:
        self._ensure_ready()

        def _clear() -> int:
            with self.sql_store.session() as sess:
                result = sess.execute(
                    delete(QueueMessageRecord).where(
                        QueueMessageRecord.queue_name == self.queue_name
                    )
                )
                return int(result.rowcount or 0)

        removed = self.policy.call(_clear)
        logger.info("Cleared %d messages from %s", removed, self.queue_name)
        return removed
