"""Ports for the outbox store, the email provider and dead-letter alerts."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from intake_mail_outbox.domain.delivery import OutboundEmail, SendResult
from intake_mail_outbox.domain.email_jobs import (
    EmailJob,
    EmailJobStatus,
    EmailType,
    NewEmailJob,
    OutboxJobQuery,
)


@runtime_checkable
class EmailOutboxStore(Protocol):
    """Durable outbox table.

    ``compare_and_swap`` is the only mutation of existing rows. It succeeds
    only when the stored row still matches ``expected`` on ``status``,
    ``claimed_at``, ``claimed_by`` and ``attempt_count``; otherwise it changes
    nothing and returns ``False``.
    """

    async def insert_job(self, job: NewEmailJob, *, now: datetime) -> EmailJob:
        """Persist a new pending job due at ``now``."""

    async def get_job(self, job_id: str) -> EmailJob | None:
        """Return one job by id."""

    async def list_jobs(self, query: OutboxJobQuery) -> list[EmailJob]:
        """Return jobs matching operator filters, newest first."""

    async def select_claimable_jobs(
        self,
        *,
        now: datetime,
        stale_before: datetime,
        limit: int,
    ) -> list[EmailJob]:
        """Return due jobs and stale claims ordered by ``next_attempt_at`` ascending."""

    async def compare_and_swap(self, expected: EmailJob, updated: EmailJob) -> bool:
        """Replace ``expected`` with ``updated`` if the row has not moved on."""

    async def find_sent_job_id(
        self,
        *,
        related_entity_id: str,
        email_type: EmailType,
        exclude_job_id: str,
    ) -> str | None:
        """Return the id of another sent job with the same intent, if any."""

    async def count_by_status(self) -> dict[EmailJobStatus, int]:
        """Return job counts grouped by status."""

    async def oldest_pending_created_at(self) -> datetime | None:
        """Return creation time of the oldest job still waiting for delivery."""

    async def close(self) -> None:
        """Release store resources."""


class EmailSender(Protocol):
    """Outbound email-sending capability."""

    async def send(self, email: OutboundEmail) -> SendResult:
        """Deliver one message. Provider errors are reported, not raised."""


class DeadLetterNotifier(Protocol):
    """Operator alert channel for jobs that used up their retry budget."""

    async def notify_exhausted(self, job: EmailJob) -> None:
        """Signal that ``job`` needs manual intervention."""


__all__ = ["DeadLetterNotifier", "EmailOutboxStore", "EmailSender"]
