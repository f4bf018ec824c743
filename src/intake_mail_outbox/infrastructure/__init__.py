"""Infrastructure layer public API."""

from intake_mail_outbox.infrastructure.alerts import (
    LoggingDeadLetterNotifier,
    WebhookDeadLetterNotifier,
)
from intake_mail_outbox.infrastructure.email import (
    EmailProviderError,
    LoggingEmailSender,
    ResendClient,
    ResendEmailSender,
)
from intake_mail_outbox.infrastructure.repositories import (
    InMemoryEmailOutboxStore,
    PostgresEmailOutboxStore,
)
from intake_mail_outbox.infrastructure.triggers import OutboxPoller

__all__ = [
    "EmailProviderError",
    "InMemoryEmailOutboxStore",
    "LoggingDeadLetterNotifier",
    "LoggingEmailSender",
    "OutboxPoller",
    "PostgresEmailOutboxStore",
    "ResendClient",
    "ResendEmailSender",
    "WebhookDeadLetterNotifier",
]
