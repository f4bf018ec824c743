"""Development sender used when no provider API key is configured."""

import logging
from uuid import uuid4

from intake_mail_outbox.domain.delivery import OutboundEmail, SendResult
from intake_mail_outbox.domain.ports import EmailSender

logger = logging.getLogger(__name__)


class LoggingEmailSender(EmailSender):
    """Log messages instead of delivering them and report success."""

    async def send(self, email: OutboundEmail) -> SendResult:
        logger.info(
            "Email dev mode: would send %s to %s with subject %r (job %s).",
            email.email_type.value,
            email.payload.masked_recipient,
            email.payload.subject,
            email.job_id,
        )
        return SendResult.sent(f"dev-{uuid4().hex}")


__all__ = ["LoggingEmailSender"]
