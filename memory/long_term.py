"""Durable, date-partitioned long-term memory over an object store."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta

from pydantic import ValidationError

from core.errors import StorageError
from memory.stores.object_store import BlobInfo, ObjectStore
from memory.types import MemoryEntry, MemoryType

logger = logging.getLogger("autoloop.memory.long_term")

MAX_METADATA_TAGS = 5


def _truncate(value: str, limit: int) -> str:
    return value if len(value) <= limit else value[:limit]


def entry_path(entry_id: str, day: datetime) -> str:
    return f"{day:%Y/%m/%d}/{entry_id}.json"


def index_metadata(entry: MemoryEntry) -> dict[str, str]:
    """Small sidecar holding the indexed fields of an entry."""
    metadata = {
        "id": entry.id,
        "type": entry.type.value,
        "importance": f"{entry.importance:.2f}",
        "timestamp": entry.timestamp.isoformat(),
        "summary": _truncate(entry.summary, 100),
    }
    for idx, tag in enumerate(entry.tags[:MAX_METADATA_TAGS]):
        metadata[f"tag{idx}"] = _truncate(tag, 50)
    return metadata


class LongTermMemory:
    """Searchable store of scored knowledge entries.

    Entries live under ``YYYY/MM/DD/{id}.json``. Scans are bounded to recent
    windows: id lookups without a date hint look back ``lookup_window_days``,
    search and type queries ``search_window_days``. Older entries are only
    reachable with an explicit date hint.
    """

    def __init__(
        self,
        blobs: ObjectStore,
        clock: Callable[[], datetime] | None = None,
        lookup_window_days: int = 30,
        search_window_days: int = 90,
    ) -> None:
        self.blobs = blobs
        self.clock = clock or (lambda: datetime.now(UTC))
        self.lookup_window_days = lookup_window_days
        self.search_window_days = search_window_days
        self.available = False
        self._warned: set[str] = set()

    def initialize(self) -> bool:
        """Prepare the backing store; on failure every operation becomes a no-op."""
        try:
            self.blobs.initialize()
            self.available = True
        except Exception as exc:
            self.available = False
            logger.warning("Long-term memory unavailable, running without it: %s", exc)
        return self.available

    def _unavailable(self, operation: str) -> bool:
        if self.available:
            return False
        if operation not in self._warned:
            self._warned.add(operation)
            logger.warning("Long-term memory unavailable; %s is a no-op", operation)
        return True

    # ── Writes ───────────────────────────────────────────────────────

    def store(self, entry: MemoryEntry) -> str:
        """Persist an entry and return its id."""
        if self._unavailable("store"):
            return entry.id
        self._write(entry)
        logger.debug("Stored memory %s of type %s", entry.id, entry.type.value)
        return entry.id

    def _write(self, entry: MemoryEntry) -> None:
        self.blobs.put(
            entry_path(entry.id, entry.timestamp),
            entry.model_dump_json(indent=2).encode("utf-8"),
            index_metadata(entry),
        )

    def delete(self, entry_id: str, date_hint: datetime | None = None) -> bool:
        if self._unavailable("delete"):
            return False
        for path in self._candidate_paths(entry_id, date_hint):
            if self.blobs.delete(path):
                return True
        return False

    # ── Reads ────────────────────────────────────────────────────────

    def _days(self, window_days: int) -> Iterator[datetime]:
        today = self.clock()
        for back in range(window_days + 1):
            yield today - timedelta(days=back)

    def _candidate_paths(self, entry_id: str, date_hint: datetime | None) -> Iterator[str]:
        if date_hint is not None:
            yield entry_path(entry_id, date_hint)
            return
        for day in self._days(self.lookup_window_days):
            yield entry_path(entry_id, day)

    def _load(self, path: str) -> MemoryEntry | None:
        raw = self.blobs.get(path)
        if raw is None:
            return None
        try:
            return MemoryEntry.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Failed to decode memory blob %s: %s", path, exc)
            return None

    def _listing(self, window_days: int) -> Iterator[BlobInfo]:
        """Blobs of the window, newest day first and newest id first within a day."""
        for day in self._days(window_days):
            infos = list(self.blobs.list_by_prefix(f"{day:%Y/%m/%d}/"))
            yield from sorted(infos, key=lambda info: info.path, reverse=True)

    def iter_entries(self, window_days: int | None = None) -> Iterator[MemoryEntry]:
        """Yield entries of the window, newest first."""
        if self._unavailable("scan"):
            return
        window = self.search_window_days if window_days is None else window_days
        for info in self._listing(window):
            entry = self._load(info.path)
            if entry is not None:
                yield entry

    def get(self, entry_id: str, date_hint: datetime | None = None) -> MemoryEntry | None:
        """Fetch an entry by id and record the access."""
        if self._unavailable("get"):
            return None
        try:
            for path in self._candidate_paths(entry_id, date_hint):
                if not self.blobs.exists(path):
                    continue
                entry = self._load(path)
                if entry is None:
                    return None
                return self._record_access(entry)
        except StorageError as exc:
            logger.error("Error retrieving memory %s: %s", entry_id, exc)
            return None
        logger.warning(
            "Memory %s not found in the last %d days", entry_id, self.lookup_window_days
        )
        return None

    def _record_access(self, entry: MemoryEntry) -> MemoryEntry:
        updated = entry.model_copy(
            update={"access_count": entry.access_count + 1, "last_accessed": self.clock()}
        )
        try:
            self._write(updated)
        except StorageError as exc:
            logger.warning("Failed to record access for memory %s: %s", entry.id, exc)
            return entry
        return updated

    def search(self, query: str, max_results: int = 10) -> list[MemoryEntry]:
        """Case-insensitive substring match over content, summary and tags."""
        if self._unavailable("search"):
            return []
        needle = query.lower()
        results: list[MemoryEntry] = []
        try:
            for entry in self.iter_entries(self.search_window_days):
                haystacks = [entry.content, entry.summary, *entry.tags]
                if any(needle in text.lower() for text in haystacks):
                    results.append(entry)
                    if len(results) >= max_results:
                        break
        except StorageError as exc:
            logger.error("Error searching memories for %r: %s", query, exc)
        results.sort(key=lambda item: item.timestamp, reverse=True)
        logger.debug("Search for %r returned %d results", query, len(results))
        return results

    def recent(self, count: int = 10) -> list[MemoryEntry]:
        if self._unavailable("recent"):
            return []
        results: list[MemoryEntry] = []
        try:
            for entry in self.iter_entries(self.lookup_window_days):
                results.append(entry)
                if len(results) >= count:
                    break
        except StorageError as exc:
            logger.error("Error loading recent memories: %s", exc)
        results.sort(key=lambda item: item.timestamp, reverse=True)
        return results

    def by_type(self, kind: MemoryType, max_results: int = 10) -> list[MemoryEntry]:
        if self._unavailable("by_type"):
            return []
        results: list[MemoryEntry] = []
        try:
            for info in self._listing(self.search_window_days):
                if info.metadata.get("type", kind.value) != kind.value:
                    continue
                entry = self._load(info.path)
                if entry is not None and entry.type == kind:
                    results.append(entry)
                    if len(results) >= max_results:
                        break
        except StorageError as exc:
            logger.error("Error loading %s memories: %s", kind.value, exc)
        results.sort(key=lambda item: item.timestamp, reverse=True)
        return results

    def since(self, cutoff: datetime, limit: int = 500) -> list[MemoryEntry]:
        """Entries created at or after cutoff, newest first."""
        if self._unavailable("since"):
            return []
        window = max(0, (self.clock().date() - cutoff.date()).days)
        results: list[MemoryEntry] = []
        try:
            for entry in self.iter_entries(min(window, self.search_window_days)):
                if entry.timestamp >= cutoff:
                    results.append(entry)
                    if len(results) >= limit:
                        break
        except StorageError as exc:
            logger.error("Error loading memories since %s: %s", cutoff, exc)
        return results

    def count(self) -> int:
        if self._unavailable("count"):
            return 0
        try:
            return sum(1 for _ in self._listing(self.search_window_days))
        except StorageError as exc:
            logger.error("Error counting memories: %s", exc)
            return 0
