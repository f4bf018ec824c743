"""Application service behind the trigger, stats and inspection routes."""

from __future__ import annotations

import logging

from intake_mail_outbox.application.dispatch import ClaimCoordinator, DispatchWorker, new_worker_id
from intake_mail_outbox.domain.clock import Clock, SystemClock
from intake_mail_outbox.domain.delivery import DispatchResult, OutboxHealth, OutboxStats
from intake_mail_outbox.domain.email_jobs import (
    EmailJob,
    EmailJobStatus,
    NewEmailJob,
    OutboxJobQuery,
    is_valid_recipient,
)
from intake_mail_outbox.domain.errors import (
    EmailJobConflictError,
    EmailJobNotFoundError,
    EmailJobValidationError,
)
from intake_mail_outbox.domain.ports import EmailOutboxStore

logger = logging.getLogger(__name__)

_MAX_LIST_LIMIT = 500


class EmailOutboxService:
    """Run dispatch cycles and answer operator queries over one outbox store."""

    def __init__(
        self,
        *,
        instance_id: str,
        store: EmailOutboxStore,
        claim_coordinator: ClaimCoordinator,
        dispatch_worker: DispatchWorker,
        clock: Clock | None = None,
        dispatch_timeout_seconds: float = 50.0,
        max_pending_age_seconds: float | None = None,
        max_exhausted_jobs: int | None = None,
    ) -> None:
        self._instance_id = instance_id
        self._store = store
        self._claim_coordinator = claim_coordinator
        self._dispatch_worker = dispatch_worker
        self._clock = clock or SystemClock()
        self._dispatch_timeout_seconds = max(dispatch_timeout_seconds, 0.0)
        self._max_pending_age_seconds = max_pending_age_seconds
        self._max_exhausted_jobs = max_exhausted_jobs

    @property
    def store(self) -> EmailOutboxStore:
        return self._store

    async def enqueue(self, job: NewEmailJob) -> EmailJob:
        """Validate and persist a rendered email as a pending job."""

        recipient = job.payload.recipient
        if not is_valid_recipient(recipient):
            raise EmailJobValidationError(f"Invalid recipient address '{recipient}'.")
        if not job.payload.subject.strip():
            raise EmailJobValidationError("Email subject cannot be empty.")

        stored = await self._store.insert_job(job, now=self._clock.now())
        logger.info(
            "Queued outbox job %s (%s to %s).",
            stored.id,
            stored.email_type.value,
            stored.payload.masked_recipient,
        )
        return stored

    async def run_dispatch_cycle(self, *, trigger: str, limit: int | None = None) -> DispatchResult:
        """Claim one batch and deliver it.

        Store failures while claiming propagate; nothing was claimed, so the
        next trigger simply tries again.
        """

        worker_id = new_worker_id(self._instance_id)
        deadline = self._clock.monotonic() + self._dispatch_timeout_seconds
        jobs = await self._claim_coordinator.claim_batch(worker_id=worker_id, limit=limit)
        if not jobs:
            logger.debug("Outbox cycle via %s found no due jobs.", trigger)
            return DispatchResult()

        result = await self._dispatch_worker.process_batch(
            jobs,
            worker_id=worker_id,
            deadline=deadline,
        )
        logger.info(
            "Outbox cycle via %s (%s): claimed=%s sent=%s failed=%s skipped=%s "
            "exhausted=%s released=%s",
            trigger,
            worker_id,
            len(jobs),
            result.sent,
            result.failed,
            result.skipped,
            result.exhausted,
            result.released,
        )
        return result

    async def get_stats(self) -> OutboxStats:
        """Aggregate counts by status. Read-only."""

        counts = await self._store.count_by_status()
        oldest = await self._store.oldest_pending_created_at()
        oldest_age = None
        if oldest is not None:
            oldest_age = max((self._clock.now() - oldest).total_seconds(), 0.0)
        return OutboxStats(
            pending=counts.get(EmailJobStatus.PENDING, 0),
            claimed=counts.get(EmailJobStatus.CLAIMED, 0),
            sent=counts.get(EmailJobStatus.SENT, 0),
            failed_retryable=counts.get(EmailJobStatus.FAILED_RETRYABLE, 0),
            exhausted=counts.get(EmailJobStatus.EXHAUSTED, 0),
            oldest_pending_age_seconds=oldest_age,
        )

    async def get_health(self) -> OutboxHealth:
        """Evaluate stats against the configured alert thresholds."""

        stats = await self.get_stats()
        alerts: list[str] = []
        if (
            self._max_pending_age_seconds is not None
            and stats.oldest_pending_age_seconds is not None
            and stats.oldest_pending_age_seconds > self._max_pending_age_seconds
        ):
            alerts.append(
                f"Oldest pending email is {stats.oldest_pending_age_seconds:.0f}s old "
                f"(threshold {self._max_pending_age_seconds:.0f}s)."
            )
        if self._max_exhausted_jobs is not None and stats.exhausted > self._max_exhausted_jobs:
            alerts.append(
                f"{stats.exhausted} exhausted emails need attention "
                f"(threshold {self._max_exhausted_jobs})."
            )
        return OutboxHealth(stats=stats, alerts=alerts)

    async def list_jobs(self, query: OutboxJobQuery) -> list[EmailJob]:
        """Return jobs for operator inspection."""

        if query.limit < 1 or query.limit > _MAX_LIST_LIMIT:
            raise EmailJobValidationError(f"limit must be between 1 and {_MAX_LIST_LIMIT}.")
        if query.offset < 0:
            raise EmailJobValidationError("offset must be >= 0.")
        return await self._store.list_jobs(query)

    async def get_job(self, job_id: str) -> EmailJob:
        """Return one job or raise when it does not exist."""

        job = await self._store.get_job(job_id)
        if job is None:
            raise EmailJobNotFoundError(f"Outbox job '{job_id}' not found.")
        return job

    async def resend_exhausted_job(self, job_id: str) -> EmailJob:
        """Queue a fresh copy of an exhausted job; the original stays terminal."""

        job = await self.get_job(job_id)
        if job.status is not EmailJobStatus.EXHAUSTED:
            raise EmailJobConflictError(
                f"Outbox job '{job_id}' is {job.status.value}; only exhausted jobs can be resent."
            )

        copy = await self._store.insert_job(
            NewEmailJob(
                email_type=job.email_type,
                payload=job.payload,
                related_entity_id=job.related_entity_id,
            ),
            now=self._clock.now(),
        )
        logger.info("Re-queued exhausted outbox job %s as %s.", job.id, copy.id)
        return copy

    async def close(self) -> None:
        """Release store resources."""

        await self._store.close()


__all__ = ["EmailOutboxService"]
