"""Email outbox job models."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_RECIPIENT_LENGTH = 254


class EmailType(StrEnum):
    """Notification kinds the intake workflow enqueues."""

    WELCOME = "welcome"
    REQUEST_APPROVED = "request_approved"
    REQUEST_DECLINED = "request_declined"
    NEEDS_MORE_INFO = "needs_more_info"
    CERTIFICATE_READY = "certificate_ready"
    MED_CERT_PATIENT = "med_cert_patient"
    MED_CERT_EMPLOYER = "med_cert_employer"
    SCRIPT_SENT = "script_sent"
    VERIFICATION_RESEND = "verification_resend"
    GENERIC = "generic"


class EmailJobStatus(StrEnum):
    """Outbox job lifecycle states."""

    PENDING = "pending"
    CLAIMED = "claimed"
    SENT = "sent"
    FAILED_RETRYABLE = "failed_retryable"
    EXHAUSTED = "exhausted"


DUE_EMAIL_JOB_STATUSES = frozenset({EmailJobStatus.PENDING, EmailJobStatus.FAILED_RETRYABLE})

TERMINAL_EMAIL_JOB_STATUSES = frozenset({EmailJobStatus.SENT, EmailJobStatus.EXHAUSTED})


def is_valid_recipient(recipient: str) -> bool:
    """Return whether an address is plausible enough to hand to the provider."""

    return len(recipient) <= MAX_RECIPIENT_LENGTH and _EMAIL_PATTERN.match(recipient) is not None


def mask_recipient(recipient: str) -> str:
    """Mask an address for log output."""

    local, _, domain = recipient.partition("@")
    if not domain:
        return "[invalid-email]"
    domain_name, _, suffix = domain.rpartition(".")
    if not domain_name:
        return f"{local[:2]}***@{domain[:3]}***"
    return f"{local[:2]}***@{domain_name[:3]}***.{suffix}"


@dataclass(slots=True, frozen=True)
class EmailPayload:
    """Rendered message content. Opaque to the dispatch engine."""

    recipient: str
    subject: str
    rendered_body: str
    recipient_name: str | None = None
    tags: dict[str, str] = field(default_factory=dict)

    @property
    def masked_recipient(self) -> str:
        return mask_recipient(self.recipient)


@dataclass(slots=True, frozen=True)
class NewEmailJob:
    """Enqueue request produced by the intake workflow."""

    email_type: EmailType
    payload: EmailPayload
    related_entity_id: str | None = None


@dataclass(slots=True, frozen=True)
class EmailJob:
    """One persisted outbox row.

    Instances are immutable snapshots. Transitions build a new snapshot with
    :func:`dataclasses.replace` and persist it through the store's
    compare-and-swap, using the snapshot that was read as the expectation.
    """

    id: str
    email_type: EmailType
    payload: EmailPayload
    related_entity_id: str | None
    status: EmailJobStatus
    attempt_count: int
    next_attempt_at: datetime
    created_at: datetime
    updated_at: datetime
    claimed_at: datetime | None = None
    claimed_by: str | None = None
    last_error: str | None = None
    provider_message_id: str | None = None
    sent_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_EMAIL_JOB_STATUSES

    def is_due(self, now: datetime) -> bool:
        """Return whether the job waits for delivery and its retry time has come."""

        return self.status in DUE_EMAIL_JOB_STATUSES and self.next_attempt_at <= now

    def is_stale_claim(self, stale_before: datetime) -> bool:
        """Return whether the job is claimed and its claim started before the cutoff."""

        return (
            self.status is EmailJobStatus.CLAIMED
            and self.claimed_at is not None
            and self.claimed_at <= stale_before
        )

    def is_claimed_by(self, worker_id: str) -> bool:
        return self.status is EmailJobStatus.CLAIMED and self.claimed_by == worker_id


@dataclass(slots=True, frozen=True)
class OutboxJobQuery:
    """Operator listing filters."""

    status: EmailJobStatus | None = None
    email_type: EmailType | None = None
    recipient: str | None = None
    related_entity_id: str | None = None
    limit: int = 50
    offset: int = 0


__all__ = [
    "DUE_EMAIL_JOB_STATUSES",
    "EmailJob",
    "EmailJobStatus",
    "EmailPayload",
    "EmailType",
    "MAX_RECIPIENT_LENGTH",
    "NewEmailJob",
    "OutboxJobQuery",
    "TERMINAL_EMAIL_JOB_STATUSES",
    "is_valid_recipient",
    "mask_recipient",
]
