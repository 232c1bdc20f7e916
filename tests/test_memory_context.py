"""Prompt memory context tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

from llm.prompt_engine.memory_injection import EMPTY_CONTEXT, build_memory_context
from memory.long_term import LongTermMemory
from memory.retrieval import MemoryContextLoader
from memory.stores.blob_store import FileBlobStore
from memory.types import ACTIVITY_TAG, MemoryEntry, MemoryType, new_memory_id

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=UTC)


def make_entry(kind: MemoryType, importance: float, age: timedelta, **kwargs: object) -> MemoryEntry:
    stamp = NOW - age
    return MemoryEntry(
        id=new_memory_id(stamp),
        timestamp=stamp,
        type=kind,
        importance=importance,
        **kwargs,  # type: ignore[arg-type]
    )


def test_empty_context_message() -> None:
    assert build_memory_context([]) == EMPTY_CONTEXT


def test_groups_ordered_by_value_with_details_for_important_entries() -> None:
    memories = [
        make_entry(MemoryType.DECISION, 0.5, timedelta(hours=3), summary="chose B", content="chose B"),
        make_entry(
            MemoryType.LEARNING,
            0.9,
            timedelta(days=2),
            summary="retry helps",
            content="Retrying with jitter fixed most upload failures.",
        ),
        make_entry(MemoryType.SUCCESS, 0.7, timedelta(hours=1), summary="uploaded"),
    ]
    text = build_memory_context(memories, now=NOW)

    assert text.index("### Learning") < text.index("### Success") < text.index("### Decision")
    assert "- [2d ago, importance: 0.90] retry helps" in text
    assert "  Details: Retrying with jitter fixed most upload failures." in text
    assert "- [3h ago, importance: 0.50] chose B" in text
    assert text.count("Details:") == 1


def test_group_is_capped() -> None:
    memories = [
        make_entry(MemoryType.SUCCESS, 0.1 * idx, timedelta(hours=1), summary=f"s{idx}")
        for idx in range(8)
    ]
    text = build_memory_context(memories, now=NOW, per_group=5)
    assert "### Success (8 entries):" in text
    assert text.count("\n- [") == 5
    assert "] s7" in text and "] s0" not in text


def build_loader(tmp_path: Path) -> tuple[MemoryContextLoader, LongTermMemory, list[datetime]]:
    now = [NOW]
    long_term = LongTermMemory(FileBlobStore(tmp_path / "long-term"), clock=lambda: now[0])
    long_term.initialize()
    loader = MemoryContextLoader(long_term, top_n=3, clock=lambda: now[0])
    return loader, long_term, now


def test_loader_ranks_by_weight_and_skips_activity(tmp_path: Path) -> None:
    loader, long_term, _ = build_loader(tmp_path)
    long_term.store(make_entry(MemoryType.LEARNING, 0.9, timedelta(days=1), summary="best"))
    long_term.store(make_entry(MemoryType.SUCCESS, 0.6, timedelta(days=1), summary="good"))
    long_term.store(make_entry(MemoryType.DECISION, 0.9, timedelta(days=20), summary="old"))
    long_term.store(make_entry(MemoryType.REFLECTION, 0.2, timedelta(days=1), summary="meh"))
    long_term.store(
        make_entry(MemoryType.SUCCESS, 1.0, timedelta(hours=1), summary="noise", tags=[ACTIVITY_TAG])
    )
    long_term.store(make_entry(MemoryType.OBSERVATION, 1.0, timedelta(hours=1), summary="ignored"))

    loaded = loader.load()

    assert [entry.summary for entry in loaded] == ["best", "good", "old"]
    assert loader.memories == loaded


def test_refresh_is_due_by_iteration_or_age(tmp_path: Path) -> None:
    loader, _, now = build_loader(tmp_path)
    assert loader.due(1) is True

    loader.load()
    assert loader.due(1) is False
    assert loader.due(10) is True

    now[0] = NOW + timedelta(minutes=61)
    assert loader.due(1) is True


class ExplodingLongTerm(LongTermMemory):
    def by_type(self, kind: MemoryType, max_results: int = 10) -> list[MemoryEntry]:
        raise RuntimeError("corrupt index")


def test_loader_falls_back_to_empty_context(tmp_path: Path) -> None:
    long_term = ExplodingLongTerm(FileBlobStore(tmp_path / "long-term"))
    loader = MemoryContextLoader(long_term)
    loader.memories = [make_entry(MemoryType.LEARNING, 0.5, timedelta(0))]

    assert loader.load() == []
    assert loader.last_loaded is not None
