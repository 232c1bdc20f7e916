"""Daily loop and token quota enforcement."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

logger = logging.getLogger("autoloop.governor")

COST_PER_MILLION_TOKENS_USD = 0.15
WARNING_RATIO = 0.9


@dataclass
class UsageRecord:
    """Counters for one UTC calendar day."""

    day: date
    loop_count: int = 0
    estimated_tokens: int = 0
    last_update: datetime | None = None


@dataclass(frozen=True)
class UsageStats:
    """Read-only view of today's usage."""

    day: date
    loop_count: int
    estimated_tokens: int
    estimated_cost_usd: float
    max_loops: int
    max_tokens: int
    loop_percentage: float
    token_percentage: float


def estimate_cost(tokens: int) -> float:
    return tokens / 1_000_000 * COST_PER_MILLION_TOKENS_USD


class UsageGovernor:
    """Tracks per-day loop count and token consumption against fixed ceilings."""

    def __init__(
        self,
        max_loops_per_day: int = 4000,
        max_tokens_per_day: int = 8_000_000,
        retention_days: int = 7,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.max_loops_per_day = int(max_loops_per_day)
        self.max_tokens_per_day = int(max_tokens_per_day)
        self.retention_days = int(retention_days)
        self.clock = clock or (lambda: datetime.now(UTC))
        self._lock = threading.Lock()
        self._records: dict[date, UsageRecord] = {}
        self._warned: set[tuple[date, str]] = set()
        logger.info(
            "Usage governor: max %d loops/day, %d tokens/day (~$%.2f/day)",
            self.max_loops_per_day,
            self.max_tokens_per_day,
            estimate_cost(self.max_tokens_per_day),
        )

    def _today(self) -> UsageRecord:
        """Return today's record, pruning expired days. Caller holds the lock."""
        today = self.clock().astimezone(UTC).date()
        cutoff = today - timedelta(days=self.retention_days)
        for day in [d for d in self._records if d < cutoff]:
            del self._records[day]
        self._warned = {item for item in self._warned if item[0] >= cutoff}
        record = self._records.get(today)
        if record is None:
            record = UsageRecord(day=today)
            self._records[today] = record
        return record

    def can_execute_loop(self) -> tuple[bool, str | None]:
        """Return whether another iteration may run, with a reason when denied."""
        with self._lock:
            record = self._today()
            loops, tokens = record.loop_count, record.estimated_tokens
        if loops >= self.max_loops_per_day:
            reason = f"Daily loop limit reached ({loops}/{self.max_loops_per_day})"
            logger.warning("Loop limit reached for %s: %d/%d", record.day, loops, self.max_loops_per_day)
            return False, reason
        if tokens >= self.max_tokens_per_day:
            reason = f"Daily token limit reached ({tokens:,}/{self.max_tokens_per_day:,})"
            logger.warning(
                "Token limit reached for %s: %d/%d", record.day, tokens, self.max_tokens_per_day
            )
            return False, reason
        return True, None

    def record_loop(self, estimated_tokens: int = 2000) -> None:
        """Count one iteration and its estimated tokens."""
        with self._lock:
            record = self._today()
            record.loop_count += 1
            record.estimated_tokens += max(0, int(estimated_tokens))
            record.last_update = self.clock()
            loops, tokens = record.loop_count, record.estimated_tokens
            warn_loops = self._should_warn(record.day, "loops", loops, self.max_loops_per_day)
            warn_tokens = self._should_warn(record.day, "tokens", tokens, self.max_tokens_per_day)

        logger.debug(
            "Loop recorded: today %d loops, ~%d tokens, ~$%.4f", loops, tokens, estimate_cost(tokens)
        )
        if warn_loops:
            logger.warning(
                "Approaching loop limit: %d/%d (%.1f%%)",
                loops,
                self.max_loops_per_day,
                loops * 100.0 / self.max_loops_per_day,
            )
        if warn_tokens:
            logger.warning(
                "Approaching token limit: %d/%d (%.1f%%)",
                tokens,
                self.max_tokens_per_day,
                tokens * 100.0 / self.max_tokens_per_day,
            )

    def _should_warn(self, day: date, counter: str, value: int, ceiling: int) -> bool:
        key = (day, counter)
        if key in self._warned or value < ceiling * WARNING_RATIO:
            return False
        self._warned.add(key)
        return True

    def get_today_stats(self) -> UsageStats:
        with self._lock:
            record = self._today()
            loops, tokens, day = record.loop_count, record.estimated_tokens, record.day
        return UsageStats(
            day=day,
            loop_count=loops,
            estimated_tokens=tokens,
            estimated_cost_usd=estimate_cost(tokens),
            max_loops=self.max_loops_per_day,
            max_tokens=self.max_tokens_per_day,
            loop_percentage=loops * 100.0 / max(1, self.max_loops_per_day),
            token_percentage=tokens * 100.0 / max(1, self.max_tokens_per_day),
        )

    def reset_today(self) -> None:
        with self._lock:
            today = self.clock().astimezone(UTC).date()
            self._records.pop(today, None)
            self._warned = {item for item in self._warned if item[0] != today}
        logger.warning("Usage reset for %s", today)

    def tracked_days(self) -> list[date]:
        with self._lock:
            self._today()
            return sorted(self._records)


class ThrottleBackoff:
    """Escalating wait after consecutive governor denials."""

    def __init__(self, base_minutes: float = 1.0, max_minutes: float = 60.0) -> None:
        self.base_minutes = base_minutes
        self.max_minutes = max_minutes
        self.consecutive_denials = 0

    def next_delay(self) -> timedelta:
        """Register a denial and return how long to wait: 2^n minutes, capped."""
        self.consecutive_denials += 1
        minutes = min(self.max_minutes, self.base_minutes * (2 ** self.consecutive_denials))
        return timedelta(minutes=minutes)

    def reset(self) -> None:
        self.consecutive_denials = 0
