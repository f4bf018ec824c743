"""Delivery of claimed outbox jobs with retry bookkeeping."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import replace

from intake_mail_outbox.application.dispatch.alerts import alert_exhausted
from intake_mail_outbox.application.dispatch.claim_coordinator import ClaimCoordinator
from intake_mail_outbox.domain.clock import Clock, SystemClock
from intake_mail_outbox.domain.delivery import DispatchResult, OutboundEmail, SendResult
from intake_mail_outbox.domain.email_jobs import EmailJob, EmailJobStatus
from intake_mail_outbox.domain.ports import DeadLetterNotifier, EmailOutboxStore, EmailSender
from intake_mail_outbox.domain.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)


class DispatchWorker:
    """Send claimed jobs and write back their terminal or retry state.

    Every write is a compare-and-swap that expects the job to still be
    claimed by the calling worker, so a stale reference can never move a
    job out of ``sent`` or ``exhausted``.
    """

    def __init__(
        self,
        store: EmailOutboxStore,
        sender: EmailSender,
        retry_policy: RetryPolicy,
        claim_coordinator: ClaimCoordinator,
        *,
        clock: Clock | None = None,
        dead_letter_notifier: DeadLetterNotifier | None = None,
        send_concurrency: int = 1,
        max_error_length: int = 2000,
        permanent_failure_fast_path: bool = False,
    ) -> None:
        self._store = store
        self._sender = sender
        self._retry_policy = retry_policy
        self._claim_coordinator = claim_coordinator
        self._clock = clock or SystemClock()
        self._dead_letter_notifier = dead_letter_notifier
        self._send_concurrency = max(send_concurrency, 1)
        self._max_error_length = max(max_error_length, 128)
        self._permanent_failure_fast_path = permanent_failure_fast_path

    async def process_batch(
        self,
        jobs: Sequence[EmailJob],
        *,
        worker_id: str,
        deadline: float | None = None,
    ) -> DispatchResult:
        """Deliver ``jobs`` claimed by ``worker_id``.

        ``deadline`` is a value of the clock's monotonic reference. Jobs not
        started by then are released back to the queue; jobs already sending
        are always resolved.
        """

        result = DispatchResult()
        if not jobs:
            return result

        slots = asyncio.Semaphore(self._send_concurrency)
        outcomes = await asyncio.gather(
            *(self._run_in_slot(slots, job, worker_id=worker_id, deadline=deadline) for job in jobs)
        )
        for outcome in outcomes:
            result.merge(outcome)
        return result

    async def _run_in_slot(
        self,
        slots: asyncio.Semaphore,
        job: EmailJob,
        *,
        worker_id: str,
        deadline: float | None,
    ) -> DispatchResult:
        try:
            await slots.acquire()
        except asyncio.CancelledError:
            await asyncio.shield(self._release(job, worker_id=worker_id))
            raise

        try:
            if deadline is not None and self._clock.monotonic() >= deadline:
                return await self._release(job, worker_id=worker_id)
            return await self._process_to_completion(job, worker_id=worker_id)
        finally:
            slots.release()

    async def _process_to_completion(self, job: EmailJob, *, worker_id: str) -> DispatchResult:
        task = asyncio.ensure_future(self._process_one(job, worker_id=worker_id))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # The send may already be with the provider; record its outcome first.
            await task
            raise

    async def _process_one(self, job: EmailJob, *, worker_id: str) -> DispatchResult:
        try:
            return await self._dispatch(job, worker_id=worker_id)
        except Exception as exc:
            logger.exception("Unexpected error while dispatching outbox job %s.", job.id)
            try:
                return await self._record_failure(
                    job,
                    f"Unexpected dispatch error: {exc}",
                    retryable=True,
                )
            except Exception:
                logger.exception(
                    "Could not record failure for outbox job %s; stale-claim recovery applies.",
                    job.id,
                )
                return DispatchResult(processed=1, failed=1)

    async def _dispatch(self, job: EmailJob, *, worker_id: str) -> DispatchResult:
        current = await self._store.get_job(job.id)
        if current is None or not current.is_claimed_by(worker_id):
            logger.warning(
                "Skipping outbox job %s: no longer claimed by %s.",
                job.id,
                worker_id,
            )
            return DispatchResult(processed=1, skipped=1)

        if current.related_entity_id is not None:
            duplicate_of = await self._store.find_sent_job_id(
                related_entity_id=current.related_entity_id,
                email_type=current.email_type,
                exclude_job_id=current.id,
            )
            if duplicate_of is not None:
                return await self._record_duplicate(current, duplicate_of)

        send_result = await self._send(current)
        if send_result.success:
            return await self._record_success(current, send_result)
        return await self._record_failure(
            current,
            send_result.error or "",
            retryable=send_result.retryable,
        )

    async def _send(self, job: EmailJob) -> SendResult:
        try:
            return await self._sender.send(OutboundEmail.from_job(job))
        except Exception as exc:
            return SendResult.failed(f"Unexpected send error: {exc}")

    async def _record_success(self, job: EmailJob, send_result: SendResult) -> DispatchResult:
        now = self._clock.now()
        updated = replace(
            job,
            status=EmailJobStatus.SENT,
            attempt_count=job.attempt_count + 1,
            claimed_at=None,
            claimed_by=None,
            last_error=None,
            provider_message_id=send_result.message_id,
            sent_at=now,
            updated_at=now,
        )
        if not await self._store.compare_and_swap(job, updated):
            logger.warning(
                "Outbox job %s was sent but its claim was lost; the result was not recorded.",
                job.id,
            )
        else:
            logger.info(
                "Sent outbox job %s (%s to %s), provider message %s.",
                job.id,
                job.email_type.value,
                job.payload.masked_recipient,
                send_result.message_id,
            )
        return DispatchResult(processed=1, sent=1)

    async def _record_failure(
        self,
        job: EmailJob,
        error: str,
        *,
        retryable: bool,
    ) -> DispatchResult:
        now = self._clock.now()
        attempts = job.attempt_count + 1
        compact_error = error.strip() or "email delivery failed"
        compact_error = compact_error[: self._max_error_length]
        exhausted = self._retry_policy.is_exhausted(attempts) or (
            self._permanent_failure_fast_path and not retryable
        )

        if exhausted:
            updated = replace(
                job,
                status=EmailJobStatus.EXHAUSTED,
                attempt_count=attempts,
                claimed_at=None,
                claimed_by=None,
                last_error=compact_error,
                updated_at=now,
            )
        else:
            updated = replace(
                job,
                status=EmailJobStatus.FAILED_RETRYABLE,
                attempt_count=attempts,
                next_attempt_at=self._retry_policy.next_attempt_time(
                    attempts,
                    now=now,
                    jitter_key=job.id,
                ),
                claimed_at=None,
                claimed_by=None,
                last_error=compact_error,
                updated_at=now,
            )

        if not await self._store.compare_and_swap(job, updated):
            logger.warning(
                "Outbox job %s failed but its claim was lost; the failure was not recorded.",
                job.id,
            )
            return DispatchResult(processed=1, failed=1)

        if exhausted:
            await alert_exhausted(self._dead_letter_notifier, updated)
            return DispatchResult(processed=1, failed=1, exhausted=1)

        logger.warning(
            "Outbox job %s delivery failed (attempt %s of %s), retry at %s: %s",
            job.id,
            attempts,
            self._retry_policy.max_attempts,
            updated.next_attempt_at.isoformat(),
            compact_error,
        )
        return DispatchResult(processed=1, failed=1)

    async def _record_duplicate(self, job: EmailJob, duplicate_of: str) -> DispatchResult:
        """Resolve ``job`` with the delivery record of the email already sent."""

        original = await self._store.get_job(duplicate_of)
        now = self._clock.now()
        updated = replace(
            job,
            status=EmailJobStatus.SENT,
            claimed_at=None,
            claimed_by=None,
            last_error=f"Skipped: duplicate of sent outbox job {duplicate_of}.",
            provider_message_id=original.provider_message_id if original else None,
            sent_at=original.sent_at if original and original.sent_at else now,
            updated_at=now,
        )
        if await self._store.compare_and_swap(job, updated):
            logger.info(
                "Skipped outbox job %s: %s for %s already sent as job %s.",
                job.id,
                job.email_type.value,
                job.related_entity_id,
                duplicate_of,
            )
        return DispatchResult(processed=1, skipped=1)

    async def _release(self, job: EmailJob, *, worker_id: str) -> DispatchResult:
        try:
            released = await self._claim_coordinator.release(job, worker_id=worker_id)
        except Exception:
            logger.exception("Could not release outbox job %s.", job.id)
            return DispatchResult()
        return DispatchResult(released=1 if released else 0)


__all__ = ["DispatchWorker"]
