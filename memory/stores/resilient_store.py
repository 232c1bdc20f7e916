"""Object store decorator applying the storage retry policy."""

from __future__ import annotations

from collections.abc import Iterator

from core.resilience import RetryPolicy, storage_policy
from memory.stores.object_store import BlobInfo, ObjectStore


class ResilientObjectStore(ObjectStore):
    """Wraps every call of an inner store with retry-with-backoff.

    Listings are materialized inside the retried call so a failure midway
    through iteration is retried as a whole.
    """

    def __init__(self, inner: ObjectStore, policy: RetryPolicy | None = None) -> None:
        self.inner = inner
        self.policy = policy or storage_policy()

    def initialize(self) -> None:
        self.policy.call(self.inner.initialize)

    def put(self, path: str, data: bytes, metadata: dict[str, str] | None = None) -> None:
        self.policy.call(self.inner.put, path, data, metadata)

    def get(self, path: str) -> bytes | None:
        return self.policy.call(self.inner.get, path)

    def exists(self, path: str) -> bool:
        return self.policy.call(self.inner.exists, path)

    def delete(self, path: str) -> bool:
        return self.policy.call(self.inner.delete, path)

    def list_by_prefix(self, prefix: str) -> Iterator[BlobInfo]:
        yield from self.policy.call(lambda: list(self.inner.list_by_prefix(prefix)))
