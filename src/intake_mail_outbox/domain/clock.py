"""Clock abstraction so claim and retry timing can be driven by tests."""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    """Source of wall-clock and monotonic time."""

    def now(self) -> datetime:
        """Return a timezone-aware UTC timestamp."""

    def monotonic(self) -> float:
        """Return a monotonic reference in seconds."""


class SystemClock(Clock):
    """Default clock backed by the standard library."""

    def now(self) -> datetime:
        return datetime.now(tz=UTC)

    def monotonic(self) -> float:
        return time.monotonic()


__all__ = ["Clock", "SystemClock"]
