"""Usage governor and throttle backoff tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from governance.usage_governor import ThrottleBackoff, UsageGovernor, estimate_cost


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


def build_governor(**kwargs: int) -> tuple[UsageGovernor, FakeClock]:
    clock = FakeClock(datetime(2024, 3, 1, 12, 0, tzinfo=UTC))
    return UsageGovernor(clock=clock, **kwargs), clock


def test_loop_limit_denies_at_ceiling() -> None:
    governor, _ = build_governor(max_loops_per_day=4000)
    for _ in range(3999):
        governor.record_loop(0)
    assert governor.can_execute_loop() == (True, None)

    governor.record_loop(0)
    allowed, reason = governor.can_execute_loop()
    assert allowed is False
    assert reason == "Daily loop limit reached (4000/4000)"


def test_token_limit_denies_before_loop_limit() -> None:
    governor, _ = build_governor(max_loops_per_day=10, max_tokens_per_day=5000)
    governor.record_loop(3000)
    governor.record_loop(3000)

    allowed, reason = governor.can_execute_loop()
    assert allowed is False
    assert reason is not None and reason.startswith("Daily token limit reached")


def test_counters_reset_on_new_utc_day() -> None:
    governor, clock = build_governor(max_loops_per_day=2)
    governor.record_loop()
    governor.record_loop()
    assert governor.can_execute_loop()[0] is False

    clock.advance(timedelta(days=1))
    assert governor.can_execute_loop() == (True, None)
    assert governor.get_today_stats().loop_count == 0


def test_old_records_are_pruned_after_retention() -> None:
    governor, clock = build_governor(retention_days=7)
    governor.record_loop()
    first_day = governor.tracked_days()[0]

    clock.advance(timedelta(days=8))
    governor.record_loop()

    assert first_day not in governor.tracked_days()
    assert len(governor.tracked_days()) == 1


def test_today_stats_include_cost_and_percentages() -> None:
    governor, _ = build_governor(max_loops_per_day=100, max_tokens_per_day=1_000_000)
    governor.record_loop(250_000)

    stats = governor.get_today_stats()
    assert stats.loop_count == 1
    assert stats.estimated_tokens == 250_000
    assert stats.loop_percentage == 1.0
    assert stats.token_percentage == 25.0
    assert abs(stats.estimated_cost_usd - estimate_cost(250_000)) < 1e-12
    assert abs(estimate_cost(1_000_000) - 0.15) < 1e-12


def test_reset_today_clears_counters() -> None:
    governor, _ = build_governor(max_loops_per_day=1)
    governor.record_loop()
    assert governor.can_execute_loop()[0] is False

    governor.reset_today()
    assert governor.can_execute_loop() == (True, None)


def test_negative_token_estimates_are_ignored() -> None:
    governor, _ = build_governor()
    governor.record_loop(-50)
    assert governor.get_today_stats().estimated_tokens == 0


def test_throttle_backoff_doubles_and_caps() -> None:
    backoff = ThrottleBackoff()
    delays = [backoff.next_delay() for _ in range(8)]

    assert delays[:5] == [timedelta(minutes=m) for m in (2, 4, 8, 16, 32)]
    assert delays[5:] == [timedelta(minutes=60)] * 3

    backoff.reset()
    assert backoff.next_delay() == timedelta(minutes=2)
