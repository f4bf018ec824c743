"""Dead-letter alert fan-out shared by the claim and dispatch steps."""

from __future__ import annotations

import logging

from intake_mail_outbox.domain.email_jobs import EmailJob
from intake_mail_outbox.domain.ports import DeadLetterNotifier

logger = logging.getLogger(__name__)


async def alert_exhausted(notifier: DeadLetterNotifier | None, job: EmailJob) -> None:
    """Log an exhausted job and forward it to the notifier.

    Notifier failures are logged; the job already reached its terminal state
    and stays visible through the inspection routes.
    """

    logger.error(
        "Outbox job %s (%s to %s) exhausted after %s attempts: %s",
        job.id,
        job.email_type.value,
        job.payload.masked_recipient,
        job.attempt_count,
        job.last_error,
    )
    if notifier is None:
        return
    try:
        await notifier.notify_exhausted(job)
    except Exception:
        logger.exception("Dead-letter notification failed for outbox job %s.", job.id)


__all__ = ["alert_exhausted"]
