"""Object-store boundary shared by both memory tiers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field


@dataclass(frozen=True)
class BlobInfo:
    """Listing entry: blob path plus its metadata sidecar."""

    path: str
    metadata: dict[str, str] = field(default_factory=dict)


class ObjectStore(ABC):
    """Blob-style storage with small string metadata per blob."""

    @abstractmethod
    def initialize(self) -> None:
        """Create the container if absent. Idempotent."""

    @abstractmethod
    def put(self, path: str, data: bytes, metadata: dict[str, str] | None = None) -> None:
        """Write or overwrite a blob."""

    @abstractmethod
    def get(self, path: str) -> bytes | None:
        """Return blob bytes or None when missing."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        ...

    @abstractmethod
    def delete(self, path: str) -> bool:
        """Delete a blob, returning whether it existed."""

    @abstractmethod
    def list_by_prefix(self, prefix: str) -> Iterator[BlobInfo]:
        """Iterate blobs whose path starts with prefix, in path order."""
