"""Dead-letter alert adapters."""

from intake_mail_outbox.infrastructure.alerts.logging_dead_letter_notifier import (
    LoggingDeadLetterNotifier,
)
from intake_mail_outbox.infrastructure.alerts.webhook_dead_letter_notifier import (
    DeadLetterWebhookError,
    WebhookDeadLetterNotifier,
)

__all__ = ["DeadLetterWebhookError", "LoggingDeadLetterNotifier", "WebhookDeadLetterNotifier"]
