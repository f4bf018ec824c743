"""Optional in-process trigger that runs dispatch cycles on an interval."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress

from intake_mail_outbox.domain.delivery import DispatchResult

logger = logging.getLogger(__name__)

DispatchCycle = Callable[[], Awaitable[DispatchResult]]


class OutboxPoller:
    """Run dispatch cycles in the background.

    The poller is one trigger among several; it does not serialize the HTTP
    triggers and relies on claim atomicity like they do. A cycle that claimed
    a full batch is followed immediately by another one.
    """

    def __init__(
        self,
        run_cycle: DispatchCycle,
        *,
        interval_seconds: float = 60.0,
        batch_size: int = 25,
    ) -> None:
        self._run_cycle = run_cycle
        self._interval_seconds = max(interval_seconds, 0.01)
        self._batch_size = max(batch_size, 1)

        self._task: asyncio.Task[None] | None = None
        self._wake_event = asyncio.Event()
        self._stopping = asyncio.Event()
        self._lifecycle_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background loop if not already running."""

        async with self._lifecycle_lock:
            if self.running:
                return

            self._stopping.clear()
            self._wake_event.set()
            self._task = asyncio.create_task(self._run_loop(), name="email-outbox-poller")

    async def stop(self) -> None:
        """Stop the loop and wait for the current cycle to unwind."""

        async with self._lifecycle_lock:
            task = self._task
            if task is None:
                return
            self._task = None

            self._stopping.set()
            self._wake_event.set()
            task.cancel()

        with suppress(asyncio.CancelledError):
            await task

    def wake(self) -> None:
        """Run the next cycle without waiting for the interval."""

        self._wake_event.set()

    async def run_once(self) -> DispatchResult:
        return await self._run_cycle()

    async def _run_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                result = await self.run_once()
            except Exception:
                logger.exception("Email outbox poller cycle failed.")
                result = DispatchResult()

            if result.processed >= self._batch_size:
                continue

            self._wake_event.clear()
            try:
                await asyncio.wait_for(self._wake_event.wait(), timeout=self._interval_seconds)
            except TimeoutError:
                pass


__all__ = ["DispatchCycle", "OutboxPoller"]
