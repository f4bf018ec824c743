"""Atomic claiming of due outbox jobs."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import timedelta
from uuid import uuid4

from intake_mail_outbox.application.dispatch.alerts import alert_exhausted
from intake_mail_outbox.domain.clock import Clock, SystemClock
from intake_mail_outbox.domain.email_jobs import EmailJob, EmailJobStatus
from intake_mail_outbox.domain.ports import DeadLetterNotifier, EmailOutboxStore
from intake_mail_outbox.domain.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)


def new_worker_id(instance_id: str) -> str:
    """Return a claim owner id unique to one dispatch cycle."""

    return f"{instance_id}:{uuid4().hex[:12]}"


class ClaimCoordinator:
    """Claim due jobs with per-row compare-and-swap.

    Overlapping triggers may read the same candidates. Each row goes to
    whichever conditional write lands first; the others affect no row and the
    job is left out of their batch.
    """

    def __init__(
        self,
        store: EmailOutboxStore,
        retry_policy: RetryPolicy,
        *,
        clock: Clock | None = None,
        max_batch_size: int = 25,
        staleness_seconds: float = 600.0,
        dead_letter_notifier: DeadLetterNotifier | None = None,
    ) -> None:
        self._store = store
        self._retry_policy = retry_policy
        self._clock = clock or SystemClock()
        self._max_batch_size = max(max_batch_size, 1)
        self._staleness_seconds = max(staleness_seconds, 0.0)
        self._dead_letter_notifier = dead_letter_notifier

    @property
    def max_batch_size(self) -> int:
        return self._max_batch_size

    async def claim_batch(
        self,
        *,
        worker_id: str,
        limit: int | None = None,
        staleness_seconds: float | None = None,
    ) -> list[EmailJob]:
        """Claim up to ``limit`` jobs for ``worker_id`` and return those won.

        Stale claims found on the way consume one attempt; a stale job whose
        budget runs out is exhausted here instead of being returned.
        """

        batch_limit = self._max_batch_size if limit is None else min(limit, self._max_batch_size)
        if batch_limit <= 0:
            return []

        staleness = self._staleness_seconds if staleness_seconds is None else staleness_seconds
        now = self._clock.now()
        candidates = await self._store.select_claimable_jobs(
            now=now,
            stale_before=now - timedelta(seconds=max(staleness, 0.0)),
            limit=batch_limit,
        )

        claimed: list[EmailJob] = []
        for job in candidates:
            reclaiming = job.status is EmailJobStatus.CLAIMED
            updated = (
                self._reclaimed(job, worker_id=worker_id, staleness=staleness)
                if reclaiming
                else self._claimed(job, worker_id=worker_id)
            )
            if not await self._store.compare_and_swap(job, updated):
                logger.debug("Outbox job %s was claimed by a concurrent worker.", job.id)
                continue

            if reclaiming:
                logger.warning(
                    "Reclaimed stale outbox job %s from %s (attempt %s).",
                    job.id,
                    job.claimed_by,
                    updated.attempt_count,
                )
            if updated.status is EmailJobStatus.EXHAUSTED:
                await alert_exhausted(self._dead_letter_notifier, updated)
                continue
            claimed.append(updated)

        return claimed

    async def release(self, job: EmailJob, *, worker_id: str) -> bool:
        """Hand an unstarted claimed job back to the queue without using an attempt."""

        if not job.is_claimed_by(worker_id):
            return False

        now = self._clock.now()
        released = replace(
            job,
            status=(
                EmailJobStatus.PENDING
                if job.attempt_count == 0
                else EmailJobStatus.FAILED_RETRYABLE
            ),
            next_attempt_at=now,
            claimed_at=None,
            claimed_by=None,
            updated_at=now,
        )
        swapped = await self._store.compare_and_swap(job, released)
        if swapped:
            logger.info("Released unstarted outbox job %s back to the queue.", job.id)
        return swapped

    def _claimed(self, job: EmailJob, *, worker_id: str) -> EmailJob:
        now = self._clock.now()
        return replace(
            job,
            status=EmailJobStatus.CLAIMED,
            claimed_at=now,
            claimed_by=worker_id,
            updated_at=now,
        )

    def _reclaimed(self, job: EmailJob, *, worker_id: str, staleness: float) -> EmailJob:
        now = self._clock.now()
        attempts = job.attempt_count + 1
        error = (
            f"Claim by {job.claimed_by} expired after {staleness:g}s without resolution."
        )
        if self._retry_policy.is_exhausted(attempts):
            return replace(
                job,
                status=EmailJobStatus.EXHAUSTED,
                attempt_count=attempts,
                claimed_at=None,
                claimed_by=None,
                last_error=error,
                updated_at=now,
            )
        return replace(
            job,
            status=EmailJobStatus.CLAIMED,
            attempt_count=attempts,
            claimed_at=now,
            claimed_by=worker_id,
            last_error=error,
            updated_at=now,
        )


__all__ = ["ClaimCoordinator", "new_worker_id"]
