"""Domain public API."""

from intake_mail_outbox.domain.clock import Clock, SystemClock
from intake_mail_outbox.domain.delivery import (
    DispatchResult,
    OutboundEmail,
    OutboxHealth,
    OutboxStats,
    SendResult,
)
from intake_mail_outbox.domain.email_jobs import (
    DUE_EMAIL_JOB_STATUSES,
    TERMINAL_EMAIL_JOB_STATUSES,
    EmailJob,
    EmailJobStatus,
    EmailPayload,
    EmailType,
    NewEmailJob,
    OutboxJobQuery,
    is_valid_recipient,
    mask_recipient,
)
from intake_mail_outbox.domain.errors import (
    EmailJobConflictError,
    EmailJobNotFoundError,
    EmailJobValidationError,
    OutboxError,
    OutboxStoreError,
)
from intake_mail_outbox.domain.ports import DeadLetterNotifier, EmailOutboxStore, EmailSender
from intake_mail_outbox.domain.retry_policy import RetryPolicy

__all__ = [
    "Clock",
    "DUE_EMAIL_JOB_STATUSES",
    "DeadLetterNotifier",
    "DispatchResult",
    "EmailJob",
    "EmailJobConflictError",
    "EmailJobNotFoundError",
    "EmailJobStatus",
    "EmailJobValidationError",
    "EmailOutboxStore",
    "EmailPayload",
    "EmailSender",
    "EmailType",
    "NewEmailJob",
    "OutboundEmail",
    "OutboxError",
    "OutboxHealth",
    "OutboxJobQuery",
    "OutboxStats",
    "OutboxStoreError",
    "RetryPolicy",
    "SendResult",
    "SystemClock",
    "TERMINAL_EMAIL_JOB_STATUSES",
    "is_valid_recipient",
    "mask_recipient",
]
