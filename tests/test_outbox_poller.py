from __future__ import annotations

import asyncio

from intake_mail_outbox.domain.delivery import DispatchResult
from intake_mail_outbox.infrastructure.triggers import OutboxPoller


def test_poller_runs_cycles_until_stopped() -> None:
    async def scenario() -> tuple[int, bool]:
        calls = 0
        ran = asyncio.Event()

        async def run_cycle() -> DispatchResult:
            nonlocal calls
            calls += 1
            ran.set()
            return DispatchResult()

        poller = OutboxPoller(run_cycle, interval_seconds=60)
        await poller.start()
        await poller.start()
        await asyncio.wait_for(ran.wait(), timeout=1)
        await poller.stop()
        return calls, poller.running

    calls, running = asyncio.run(scenario())

    assert calls == 1
    assert running is False


def test_poller_runs_again_immediately_after_a_full_batch() -> None:
    async def scenario() -> int:
        results = [DispatchResult(processed=2, sent=2), DispatchResult()]
        calls = 0
        drained = asyncio.Event()

        async def run_cycle() -> DispatchResult:
            nonlocal calls
            calls += 1
            if calls >= 2:
                drained.set()
            return results.pop(0) if results else DispatchResult()

        poller = OutboxPoller(run_cycle, interval_seconds=60, batch_size=2)
        await poller.start()
        await asyncio.wait_for(drained.wait(), timeout=1)
        await poller.stop()
        return calls

    assert asyncio.run(scenario()) == 2


def test_poller_survives_failed_cycle() -> None:
    async def scenario() -> int:
        calls = 0
        recovered = asyncio.Event()

        async def run_cycle() -> DispatchResult:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("database unavailable")
            recovered.set()
            return DispatchResult()

        poller = OutboxPoller(run_cycle, interval_seconds=0.01)
        await poller.start()
        await asyncio.wait_for(recovered.wait(), timeout=1)
        await poller.stop()
        return calls

    assert asyncio.run(scenario()) >= 2
