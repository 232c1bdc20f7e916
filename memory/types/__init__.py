"""Typed memory payload models."""

from memory.types.cache import CacheEntry
from memory.types.entry import (
    ACTIVITY_TAG,
    CONSOLIDATED_TAG,
    LEARNING_TAG,
    MemoryEntry,
    MemoryType,
    new_memory_id,
)
from memory.types.learning import ConsolidatedLearning

__all__ = [
    "ACTIVITY_TAG",
    "CONSOLIDATED_TAG",
    "LEARNING_TAG",
    "CacheEntry",
    "ConsolidatedLearning",
    "MemoryEntry",
    "MemoryType",
    "new_memory_id",
]
