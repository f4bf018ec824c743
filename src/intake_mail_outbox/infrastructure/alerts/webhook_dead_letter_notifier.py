"""Dead-letter notifier posting exhausted jobs to an HTTP webhook."""

from __future__ import annotations

import httpx

from intake_mail_outbox.domain.email_jobs import EmailJob
from intake_mail_outbox.domain.ports import DeadLetterNotifier


class DeadLetterWebhookError(RuntimeError):
    """Raised when the webhook cannot be reached or rejects the alert."""


class WebhookDeadLetterNotifier(DeadLetterNotifier):
    """POST a JSON summary of each exhausted job to an operator webhook."""

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        normalized = url.strip()
        if not normalized:
            raise DeadLetterWebhookError("Dead-letter webhook URL cannot be empty.")
        self._url = normalized
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def notify_exhausted(self, job: EmailJob) -> None:
        body = {
            "event": "email_outbox.exhausted",
            "jobId": job.id,
            "emailType": job.email_type.value,
            "recipient": job.payload.masked_recipient,
            "relatedEntityId": job.related_entity_id,
            "attemptCount": job.attempt_count,
            "lastError": job.last_error,
            "updatedAt": job.updated_at.isoformat(),
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=self._transport,
            ) as http_client:
                response = await http_client.post(self._url, json=body)
        except httpx.HTTPError as exc:
            raise DeadLetterWebhookError(f"POST {self._url} failed: {exc}") from exc

        if not response.is_success:
            raise DeadLetterWebhookError(
                f"POST {self._url} failed: {response.status_code} "
                f"{response.text.strip() or '<no response body>'}"
            )


__all__ = ["DeadLetterWebhookError", "WebhookDeadLetterNotifier"]
