from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from intake_mail_outbox.domain.retry_policy import RetryPolicy


def test_first_failure_waits_base_delay_then_doubles() -> None:
    policy = RetryPolicy(base_delay_seconds=60, max_delay_seconds=3600, jitter_ratio=0.0)

    assert policy.delay_seconds(1) == 60
    assert policy.delay_seconds(2) == 120
    assert policy.delay_seconds(3) == 240


def test_three_attempt_budget_schedules_one_then_two_minutes_then_exhausts() -> None:
    policy = RetryPolicy(max_attempts=3, base_delay_seconds=60, jitter_ratio=0.0)
    now = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)

    assert not policy.is_exhausted(1)
    assert policy.next_attempt_time(1, now=now) == now + timedelta(minutes=1)
    assert not policy.is_exhausted(2)
    assert policy.next_attempt_time(2, now=now) == now + timedelta(minutes=2)
    assert policy.is_exhausted(3)


def test_delays_never_decrease_and_never_exceed_cap() -> None:
    policy = RetryPolicy(base_delay_seconds=30, max_delay_seconds=900, jitter_ratio=0.2)

    for key in ("job-a", "job-b", None):
        delays = [policy.delay_seconds(n, key) for n in range(1, 25)]
        assert delays == sorted(delays)
        assert all(delay <= 900 for delay in delays)
        assert delays[-1] == delays[-2]


def test_jitter_is_stable_per_job_and_bounded() -> None:
    policy = RetryPolicy(base_delay_seconds=60, max_delay_seconds=3600, jitter_ratio=0.1)

    first = policy.delay_seconds(1, "5f0c2c1e")
    assert first == policy.delay_seconds(1, "5f0c2c1e")
    assert 54 <= first <= 66

    spread = {policy.delay_seconds(1, f"job-{index}") for index in range(20)}
    assert len(spread) > 1


def test_very_large_attempt_counts_stay_at_cap() -> None:
    policy = RetryPolicy(base_delay_seconds=60, max_delay_seconds=3600, jitter_ratio=0.0)

    assert policy.delay_seconds(10_000) == 3600


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0},
        {"base_delay_seconds": 0},
        {"base_delay_seconds": 120, "max_delay_seconds": 60},
        {"jitter_ratio": 1.0},
        {"jitter_ratio": -0.1},
    ],
)
def test_invalid_policy_values_are_rejected(kwargs: dict[str, float]) -> None:
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)
