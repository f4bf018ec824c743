"""Pydantic models for the trigger, stats and inspection routes."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from intake_mail_outbox.domain.delivery import DispatchResult, OutboxHealth, OutboxStats
from intake_mail_outbox.domain.email_jobs import (
    EmailJob,
    EmailJobStatus,
    EmailPayload,
    EmailType,
    NewEmailJob,
)


class OutboxModel(BaseModel):
    """Base model for outbox HTTP payloads."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class DispatchResponse(OutboxModel):
    """Trigger endpoint payload."""

    success: bool = True
    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    exhausted: int = 0
    released: int = 0

    @classmethod
    def from_result(cls, result: DispatchResult) -> DispatchResponse:
        return cls(
            processed=result.processed,
            sent=result.sent,
            failed=result.failed,
            skipped=result.skipped,
            exhausted=result.exhausted,
            released=result.released,
        )


class OutboxStatsResponse(OutboxModel):
    """Counts by status for dashboards and probes."""

    pending: int
    claimed: int
    sent: int
    failed_retryable: int = Field(alias="failedRetryable")
    exhausted: int
    oldest_pending_age_seconds: float | None = Field(
        default=None, alias="oldestPendingAgeSeconds"
    )

    @classmethod
    def from_stats(cls, stats: OutboxStats) -> OutboxStatsResponse:
        return cls(
            pending=stats.pending,
            claimed=stats.claimed,
            sent=stats.sent,
            failed_retryable=stats.failed_retryable,
            exhausted=stats.exhausted,
            oldest_pending_age_seconds=stats.oldest_pending_age_seconds,
        )


class OutboxHealthResponse(OutboxModel):
    """Health verdict with the alerts that caused it."""

    healthy: bool
    alerts: list[str] = Field(default_factory=list)
    stats: OutboxStatsResponse

    @classmethod
    def from_health(cls, health: OutboxHealth) -> OutboxHealthResponse:
        return cls(
            healthy=health.healthy,
            alerts=list(health.alerts),
            stats=OutboxStatsResponse.from_stats(health.stats),
        )


class EnqueueEmailRequest(OutboxModel):
    """Rendered email submitted by the intake workflow."""

    email_type: EmailType = Field(alias="emailType")
    recipient: str
    recipient_name: str | None = Field(default=None, alias="recipientName")
    subject: str = Field(min_length=1)
    rendered_body: str = Field(alias="renderedBody", min_length=1)
    related_entity_id: str | None = Field(default=None, alias="relatedEntityId")
    tags: dict[str, str] = Field(default_factory=dict)

    def to_new_job(self) -> NewEmailJob:
        return NewEmailJob(
            email_type=self.email_type,
            related_entity_id=self.related_entity_id,
            payload=EmailPayload(
                recipient=self.recipient.strip(),
                recipient_name=self.recipient_name,
                subject=self.subject,
                rendered_body=self.rendered_body,
                tags=dict(self.tags),
            ),
        )


class EmailJobResponse(OutboxModel):
    """Operator view of one job. The rendered body is omitted."""

    id: str
    email_type: EmailType = Field(alias="emailType")
    recipient: str
    subject: str
    related_entity_id: str | None = Field(default=None, alias="relatedEntityId")
    status: EmailJobStatus
    attempt_count: int = Field(alias="attemptCount")
    next_attempt_at: datetime = Field(alias="nextAttemptAt")
    claimed_at: datetime | None = Field(default=None, alias="claimedAt")
    claimed_by: str | None = Field(default=None, alias="claimedBy")
    last_error: str | None = Field(default=None, alias="lastError")
    provider_message_id: str | None = Field(default=None, alias="providerMessageId")
    sent_at: datetime | None = Field(default=None, alias="sentAt")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @classmethod
    def from_job(cls, job: EmailJob) -> EmailJobResponse:
        return cls(
            id=job.id,
            email_type=job.email_type,
            recipient=job.payload.recipient,
            subject=job.payload.subject,
            related_entity_id=job.related_entity_id,
            status=job.status,
            attempt_count=job.attempt_count,
            next_attempt_at=job.next_attempt_at,
            claimed_at=job.claimed_at,
            claimed_by=job.claimed_by,
            last_error=job.last_error,
            provider_message_id=job.provider_message_id,
            sent_at=job.sent_at,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


class EmailJobListResponse(OutboxModel):
    """Collection wrapper for the job listing."""

    jobs: list[EmailJobResponse]


__all__ = [
    "DispatchResponse",
    "EmailJobListResponse",
    "EmailJobResponse",
    "EnqueueEmailRequest",
    "OutboxHealthResponse",
    "OutboxModel",
    "OutboxStatsResponse",
]
