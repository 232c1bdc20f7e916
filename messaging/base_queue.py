"""Durable queue boundary."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta

from messaging.models import QueueMessage


class MessageQueue(ABC):
    """At-least-once queue with visibility leases.

    A received message stays invisible for the visibility timeout and
    reappears with a higher dequeue count unless it is deleted with the
    receipt issued by the most recent receive.
    """

    @abstractmethod
    def send(self, content: str, delay: timedelta | None = None) -> str:
        """Enqueue content, optionally invisible for ``delay``; return message id."""

    @abstractmethod
    def receive(
        self, max_messages: int = 10, visibility_timeout: timedelta = timedelta(seconds=30)
    ) -> list[QueueMessage]:
        ...

    @abstractmethod
    def delete(self, message_id: str, pop_receipt: str) -> bool:
        ...

    @abstractmethod
    def update_visibility(
        self, message_id: str, pop_receipt: str, visibility_timeout: timedelta
    ) -> str | None:
        """Extend a lease; returns the new receipt or None if the lease is lost."""

    @abstractmethod
    def approximate_count(self) -> int:
        ...

    @abstractmethod
    def clear(self) -> int:
        """Remove every message, returning how many were removed."""
