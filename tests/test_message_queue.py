"""Message queue lease semantics, shared by the in-memory and SQL queues."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from core.resilience import RetryPolicy
from memory.stores.sql_store import SQLStore
from messaging.base_queue import MessageQueue
from messaging.memory_queue import InMemoryMessageQueue
from messaging.sql_queue import SQLMessageQueue


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture(params=["memory", "sql"])
def queue_and_clock(
    request: pytest.FixtureRequest, tmp_path: Path
) -> tuple[MessageQueue, FakeClock]:
    clock = FakeClock()
    if request.param == "memory":
        return InMemoryMessageQueue(clock=clock), clock
    policy = RetryPolicy("queue", max_retries=0, sleep=lambda _: None)
    return SQLMessageQueue(SQLStore(tmp_path / "queue.db"), policy=policy, clock=clock), clock


LEASE = timedelta(seconds=60)


def test_receive_leases_messages_in_order(queue_and_clock: tuple[MessageQueue, FakeClock]) -> None:
    queue, clock = queue_and_clock
    queue.send("first")
    clock.advance(1)
    queue.send("second")

    leased = queue.receive(max_messages=10, visibility_timeout=LEASE)
    assert [msg.content for msg in leased] == ["first", "second"]
    assert all(msg.dequeue_count == 1 for msg in leased)
    assert queue.receive(visibility_timeout=LEASE) == []
    assert queue.approximate_count() == 2


def test_expired_lease_redelivers_with_new_receipt(
    queue_and_clock: tuple[MessageQueue, FakeClock],
) -> None:
    queue, clock = queue_and_clock
    queue.send("payload")
    first = queue.receive(visibility_timeout=LEASE)[0]

    clock.advance(61)
    second = queue.receive(visibility_timeout=LEASE)[0]
    assert second.message_id == first.message_id
    assert second.dequeue_count == 2
    assert second.pop_receipt != first.pop_receipt

    assert queue.delete(first.message_id, first.pop_receipt) is False
    assert queue.delete(second.message_id, second.pop_receipt) is True
    assert queue.approximate_count() == 0


def test_delayed_send_stays_invisible(queue_and_clock: tuple[MessageQueue, FakeClock]) -> None:
    queue, clock = queue_and_clock
    queue.send("later", delay=timedelta(seconds=30))

    assert queue.receive(visibility_timeout=LEASE) == []
    clock.advance(30)
    assert [msg.content for msg in queue.receive(visibility_timeout=LEASE)] == ["later"]


def test_update_visibility_extends_lease(queue_and_clock: tuple[MessageQueue, FakeClock]) -> None:
    queue, clock = queue_and_clock
    queue.send("slow")
    msg = queue.receive(visibility_timeout=LEASE)[0]

    receipt = queue.update_visibility(msg.message_id, msg.pop_receipt, timedelta(seconds=300))
    assert receipt is not None
    assert queue.update_visibility(msg.message_id, msg.pop_receipt, LEASE) is None

    clock.advance(120)
    assert queue.receive(visibility_timeout=LEASE) == []
    assert queue.delete(msg.message_id, receipt) is True


def test_max_messages_and_clear(queue_and_clock: tuple[MessageQueue, FakeClock]) -> None:
    queue, clock = queue_and_clock
    for idx in range(5):
        queue.send(f"m{idx}")
        clock.advance(1)

    assert len(queue.receive(max_messages=3, visibility_timeout=LEASE)) == 3
    assert queue.clear() == 5
    assert queue.approximate_count() == 0
