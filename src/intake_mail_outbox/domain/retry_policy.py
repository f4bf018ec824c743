"""Exponential backoff and retry budget for outbox jobs."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta

_MAX_EXPONENT = 62


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Subsystem-wide retry budget with capped exponential backoff.

    ``delay = min(base * 2**(n - 1), max)`` for the ``n``-th failed attempt, so
    the first failure waits ``base``. Jitter is derived from a stable key (the
    job id) rather than a random source: every job keeps a monotonic schedule
    while jobs that failed in the same cycle spread out. The jittered delay is
    capped at ``max`` as well.
    """

    max_attempts: int = 3
    base_delay_seconds: float = 60.0
    max_delay_seconds: float = 3600.0
    jitter_ratio: float = 0.1

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1.")
        if self.base_delay_seconds <= 0:
            raise ValueError("base_delay_seconds must be > 0.")
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds.")
        if not 0.0 <= self.jitter_ratio < 1.0:
            raise ValueError("jitter_ratio must be within [0, 1).")

    def is_exhausted(self, attempt_count: int) -> bool:
        """Return whether ``attempt_count`` used up the retry budget."""

        return attempt_count >= self.max_attempts

    def delay_seconds(self, failed_attempts: int, jitter_key: str | None = None) -> float:
        """Return the wait before retrying after ``failed_attempts`` failures."""

        exponent = min(max(failed_attempts - 1, 0), _MAX_EXPONENT)
        delay = min(self.base_delay_seconds * (2**exponent), self.max_delay_seconds)
        if jitter_key is not None and self.jitter_ratio > 0:
            delay *= 1.0 + self._jitter_fraction(jitter_key)
        return min(max(delay, 0.0), self.max_delay_seconds)

    def next_attempt_time(
        self,
        failed_attempts: int,
        *,
        now: datetime,
        jitter_key: str | None = None,
    ) -> datetime:
        """Return when a job that failed ``failed_attempts`` times becomes due again."""

        return now + timedelta(seconds=self.delay_seconds(failed_attempts, jitter_key))

    def _jitter_fraction(self, jitter_key: str) -> float:
        digest = hashlib.sha256(jitter_key.encode("utf-8")).digest()
        unit = int.from_bytes(digest[:8], "big") / float(1 << 64)
        return (unit * 2.0 - 1.0) * self.jitter_ratio


__all__ = ["RetryPolicy"]
