"""Short-term memory: TTL cache persisted in an object store."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar
from urllib.parse import quote

from pydantic import BaseModel, ValidationError

from memory.stores.object_store import ObjectStore
from memory.types import CacheEntry

logger = logging.getLogger("autoloop.memory.short_term")

M = TypeVar("M", bound=BaseModel)


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a glob with ``*`` as the only wildcard."""
    return re.compile("^" + re.escape(pattern).replace(r"\*", ".*") + "$", re.DOTALL)


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


class ShortTermMemory:
    """Short-lived key/value cache with per-entry expiration."""

    def __init__(
        self,
        store: ObjectStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.clock = clock or (lambda: datetime.now(UTC))
        self.available = False
        self._warned: set[str] = set()

    def initialize(self) -> bool:
        """Prepare the backing store; on failure every operation becomes a no-op."""
        try:
            self.store.initialize()
            self.available = True
        except Exception as exc:
            self.available = False
            logger.warning("Short-term memory unavailable, running without it: %s", exc)
        return self.available

    def _unavailable(self, operation: str) -> bool:
        if self.available:
            return False
        if operation not in self._warned:
            self._warned.add(operation)
            logger.warning("Short-term memory unavailable; %s is a no-op", operation)
        return True

    @staticmethod
    def blob_name(key: str) -> str:
        return quote(key, safe="") + ".json"

    def set(self, key: str, value: Any, ttl: timedelta | None = None) -> None:
        if self._unavailable("set"):
            return
        now = self.clock()
        entry = CacheEntry(
            key=key,
            value=_to_jsonable(value),
            created_at=now,
            expires_at=now + ttl if ttl is not None else None,
        )
        metadata = {"key": key, "created_at": now.isoformat()}
        if entry.expires_at is not None:
            metadata["expires_at"] = entry.expires_at.isoformat()
        self.store.put(
            self.blob_name(key),
            entry.model_dump_json().encode("utf-8"),
            metadata,
        )

    def _load(self, key: str) -> CacheEntry | None:
        raw = self.store.get(self.blob_name(key))
        if raw is None:
            return None
        try:
            entry = CacheEntry.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable short-term entry %s", key)
            self.store.delete(self.blob_name(key))
            return None
        if entry.is_expired(self.clock()):
            self.store.delete(self.blob_name(key))
            return None
        return entry

    def get(self, key: str, model: type[M] | None = None) -> Any:
        """Return the stored value, validated into ``model`` when given."""
        if self._unavailable("get"):
            return None
        entry = self._load(key)
        if entry is None:
            return None
        if model is None:
            return entry.value
        try:
            return model.model_validate(entry.value)
        except ValidationError as exc:
            logger.warning("Short-term entry %s does not match %s: %s", key, model.__name__, exc)
            return None

    def delete(self, key: str) -> bool:
        if self._unavailable("delete"):
            return False
        return self.store.delete(self.blob_name(key))

    def exists(self, key: str) -> bool:
        if self._unavailable("exists"):
            return False
        return self._load(key) is not None

    @staticmethod
    def _expired(metadata: dict[str, str], now: datetime) -> bool:
        expires = metadata.get("expires_at")
        return bool(expires) and datetime.fromisoformat(expires) <= now

    def keys(self, pattern: str = "*") -> list[str]:
        """List live keys matching a glob pattern, dropping any expired entry seen."""
        if self._unavailable("keys"):
            return []
        regex = glob_to_regex(pattern)
        now = self.clock()
        found: list[str] = []
        for info in self.store.list_by_prefix(""):
            if self._expired(info.metadata, now):
                self.store.delete(info.path)
                continue
            key = info.metadata.get("key")
            if key is not None and regex.match(key):
                found.append(key)
        return found

    def purge_expired(self) -> int:
        """Delete every expired entry and return how many were removed."""
        if self._unavailable("purge"):
            return 0
        now = self.clock()
        removed = 0
        for info in self.store.list_by_prefix(""):
            if self._expired(info.metadata, now) and self.store.delete(info.path):
                removed += 1
        if removed:
            logger.info("Purged %d expired short-term entries", removed)
        return removed

    def get_many(self, keys: list[str], model: type[M] | None = None) -> list[Any]:
        values = [self.get(key, model) for key in keys]
        return [value for value in values if value is not None]
