"""Email-sending capability backed by Resend."""

from intake_mail_outbox.domain.delivery import OutboundEmail, SendResult
from intake_mail_outbox.domain.ports import EmailSender
from intake_mail_outbox.infrastructure.email.resend_client import EmailProviderError, ResendClient


class ResendEmailSender(EmailSender):
    """Deliver outbox jobs through the Resend API."""

    def __init__(
        self,
        client: ResendClient,
        *,
        from_email: str,
        reply_to: str | None = None,
    ) -> None:
        self._client = client
        self._from_email = from_email
        self._reply_to = reply_to

    async def send(self, email: OutboundEmail) -> SendResult:
        try:
            message_id = await self._client.send_email(
                sender=self._from_email,
                to=self._formatted_recipient(email),
                subject=email.payload.subject,
                html=email.payload.rendered_body,
                reply_to=self._reply_to,
                tags=email.tags,
                idempotency_key=f"email-outbox/{email.job_id}",
            )
        except EmailProviderError as exc:
            return SendResult.failed(str(exc), retryable=exc.retryable)
        return SendResult.sent(message_id)

    def _formatted_recipient(self, email: OutboundEmail) -> str:
        name = (email.payload.recipient_name or "").strip().replace('"', "")
        if not name:
            return email.payload.recipient
        return f'"{name}" <{email.payload.recipient}>'


__all__ = ["ResendEmailSender"]
