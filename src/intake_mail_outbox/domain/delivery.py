"""Delivery results, cycle counters and outbox statistics."""

from __future__ import annotations

from dataclasses import dataclass, field

from intake_mail_outbox.domain.email_jobs import EmailJob, EmailPayload, EmailType


@dataclass(slots=True, frozen=True)
class OutboundEmail:
    """Message handed to the email-sending capability."""

    job_id: str
    email_type: EmailType
    payload: EmailPayload

    @classmethod
    def from_job(cls, job: EmailJob) -> OutboundEmail:
        return cls(job_id=job.id, email_type=job.email_type, payload=job.payload)

    @property
    def tags(self) -> dict[str, str]:
        """Provider tags; the email type tag always wins over payload tags."""

        return {**self.payload.tags, "email_type": self.email_type.value}


@dataclass(slots=True, frozen=True)
class SendResult:
    """Outcome of one provider call."""

    success: bool
    message_id: str | None = None
    error: str | None = None
    retryable: bool = True

    @classmethod
    def sent(cls, message_id: str | None) -> SendResult:
        return cls(success=True, message_id=message_id)

    @classmethod
    def failed(cls, error: str, *, retryable: bool = True) -> SendResult:
        return cls(success=False, error=error, retryable=retryable)


@dataclass(slots=True)
class DispatchResult:
    """Informational counters for one dispatch cycle."""

    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    exhausted: int = 0
    released: int = 0

    def merge(self, other: DispatchResult) -> None:
        self.processed += other.processed
        self.sent += other.sent
        self.failed += other.failed
        self.skipped += other.skipped
        self.exhausted += other.exhausted
        self.released += other.released


@dataclass(slots=True, frozen=True)
class OutboxStats:
    """Job counts by status plus the age of the oldest undelivered job."""

    pending: int = 0
    claimed: int = 0
    sent: int = 0
    failed_retryable: int = 0
    exhausted: int = 0
    oldest_pending_age_seconds: float | None = None


@dataclass(slots=True, frozen=True)
class OutboxHealth:
    """Health verdict derived from :class:`OutboxStats`."""

    stats: OutboxStats
    alerts: list[str] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not self.alerts


__all__ = [
    "DispatchResult",
    "OutboundEmail",
    "OutboxHealth",
    "OutboxStats",
    "SendResult",
]
