"""In-memory outbox store for local development and tests."""

from __future__ import annotations

import asyncio
from datetime import datetime
from uuid import uuid4

from intake_mail_outbox.domain.email_jobs import (
    DUE_EMAIL_JOB_STATUSES,
    EmailJob,
    EmailJobStatus,
    EmailType,
    NewEmailJob,
    OutboxJobQuery,
)
from intake_mail_outbox.domain.ports import EmailOutboxStore


class InMemoryEmailOutboxStore(EmailOutboxStore):
    """Outbox table held in a dict of immutable job snapshots."""

    def __init__(self) -> None:
        self._jobs: dict[str, EmailJob] = {}
        self._lock = asyncio.Lock()

    async def insert_job(self, job: NewEmailJob, *, now: datetime) -> EmailJob:
        """Persist a new pending job."""

        stored = EmailJob(
            id=str(uuid4()),
            email_type=job.email_type,
            payload=job.payload,
            related_entity_id=job.related_entity_id,
            status=EmailJobStatus.PENDING,
            attempt_count=0,
            next_attempt_at=now,
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self._jobs[stored.id] = stored
        return stored

    async def get_job(self, job_id: str) -> EmailJob | None:
        """Return by id."""

        return self._jobs.get(job_id)

    async def list_jobs(self, query: OutboxJobQuery) -> list[EmailJob]:
        """Return filtered jobs, newest first."""

        async with self._lock:
            jobs = [job for job in self._jobs.values() if self._matches(job, query)]
        jobs.sort(key=lambda job: (job.created_at, job.id), reverse=True)
        offset = max(query.offset, 0)
        return jobs[offset : offset + max(query.limit, 0)]

    async def select_claimable_jobs(
        self,
        *,
        now: datetime,
        stale_before: datetime,
        limit: int,
    ) -> list[EmailJob]:
        """Return due jobs and stale claims, oldest due first."""

        if limit <= 0:
            return []

        async with self._lock:
            candidates = [
                job
                for job in self._jobs.values()
                if job.is_due(now) or job.is_stale_claim(stale_before)
            ]
        candidates.sort(key=lambda job: (job.next_attempt_at, job.created_at, job.id))
        return candidates[:limit]

    async def compare_and_swap(self, expected: EmailJob, updated: EmailJob) -> bool:
        """Apply ``updated`` only if the stored row still matches ``expected``."""

        async with self._lock:
            current = self._jobs.get(expected.id)
            if current is None:
                return False
            if (
                current.status is not expected.status
                or current.claimed_at != expected.claimed_at
                or current.claimed_by != expected.claimed_by
                or current.attempt_count != expected.attempt_count
            ):
                return False
            self._jobs[expected.id] = updated
            return True

    async def find_sent_job_id(
        self,
        *,
        related_entity_id: str,
        email_type: EmailType,
        exclude_job_id: str,
    ) -> str | None:
        """Return another sent job with the same intent."""

        async with self._lock:
            for job in self._jobs.values():
                if (
                    job.id != exclude_job_id
                    and job.status is EmailJobStatus.SENT
                    and job.related_entity_id == related_entity_id
                    and job.email_type is email_type
                ):
                    return job.id
        return None

    async def count_by_status(self) -> dict[EmailJobStatus, int]:
        """Return counts for every status, including empty ones."""

        counts = dict.fromkeys(EmailJobStatus, 0)
        async with self._lock:
            for job in self._jobs.values():
                counts[job.status] += 1
        return counts

    async def oldest_pending_created_at(self) -> datetime | None:
        """Return creation time of the oldest undelivered job."""

        async with self._lock:
            waiting = [
                job.created_at
                for job in self._jobs.values()
                if job.status in DUE_EMAIL_JOB_STATUSES
            ]
        return min(waiting, default=None)

    async def close(self) -> None:
        """Nothing to release."""

    def _matches(self, job: EmailJob, query: OutboxJobQuery) -> bool:
        if query.status is not None and job.status is not query.status:
            return False
        if query.email_type is not None and job.email_type is not query.email_type:
            return False
        if (
            query.recipient is not None
            and job.payload.recipient.lower() != query.recipient.strip().lower()
        ):
            return False
        if (
            query.related_entity_id is not None
            and job.related_entity_id != query.related_entity_id
        ):
            return False
        return True


__all__ = ["InMemoryEmailOutboxStore"]
