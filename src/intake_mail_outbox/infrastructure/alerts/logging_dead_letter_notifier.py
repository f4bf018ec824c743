"""Dead-letter notifier that only writes to the service log."""

import logging

from intake_mail_outbox.domain.email_jobs import EmailJob
from intake_mail_outbox.domain.ports import DeadLetterNotifier

logger = logging.getLogger(__name__)


class LoggingDeadLetterNotifier(DeadLetterNotifier):
    """Default alert channel when no webhook is configured."""

    async def notify_exhausted(self, job: EmailJob) -> None:
        logger.warning(
            "Dead-letter: outbox job %s (%s, related entity %s) needs manual attention.",
            job.id,
            job.email_type.value,
            job.related_entity_id or "-",
        )


__all__ = ["LoggingDeadLetterNotifier"]
