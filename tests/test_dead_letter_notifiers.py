from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime

import httpx
import pytest

from intake_mail_outbox.application.dispatch.alerts import alert_exhausted
from intake_mail_outbox.domain.email_jobs import EmailJob, EmailJobStatus, EmailPayload, EmailType
from intake_mail_outbox.infrastructure.alerts import (
    DeadLetterWebhookError,
    LoggingDeadLetterNotifier,
    WebhookDeadLetterNotifier,
)


def _exhausted_job() -> EmailJob:
    now = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)
    return EmailJob(
        id="job-9",
        email_type=EmailType.NEEDS_MORE_INFO,
        payload=EmailPayload(
            recipient="jane@example.com",
            subject="We need more information",
            rendered_body="<p>Please reply.</p>",
        ),
        related_entity_id="request-9",
        status=EmailJobStatus.EXHAUSTED,
        attempt_count=3,
        next_attempt_at=now,
        created_at=now,
        updated_at=now,
        last_error="500 internal error",
    )


def test_webhook_notifier_posts_masked_summary() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code=204)

    notifier = WebhookDeadLetterNotifier(
        "https://alerts.example.com/hooks/email",
        transport=httpx.MockTransport(handler),
    )
    asyncio.run(notifier.notify_exhausted(_exhausted_job()))

    assert str(requests[0].url) == "https://alerts.example.com/hooks/email"
    payload = json.loads(requests[0].content.decode())
    assert payload["event"] == "email_outbox.exhausted"
    assert payload["jobId"] == "job-9"
    assert payload["recipient"] == "ja***@exa***.com"
    assert payload["attemptCount"] == 3
    assert payload["lastError"] == "500 internal error"


def test_webhook_notifier_raises_on_rejection() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=500, text="down")

    notifier = WebhookDeadLetterNotifier(
        "https://alerts.example.com/hooks/email",
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(DeadLetterWebhookError):
        asyncio.run(notifier.notify_exhausted(_exhausted_job()))


def test_alert_exhausted_survives_notifier_failure(caplog: pytest.LogCaptureFixture) -> None:
    class _BrokenNotifier:
        async def notify_exhausted(self, job: EmailJob) -> None:
            raise DeadLetterWebhookError("unreachable")

    with caplog.at_level(logging.ERROR):
        asyncio.run(alert_exhausted(_BrokenNotifier(), _exhausted_job()))

    assert "exhausted after 3 attempts" in caplog.text
    assert "Dead-letter notification failed for outbox job job-9" in caplog.text


def test_logging_notifier_writes_warning(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING):
        asyncio.run(LoggingDeadLetterNotifier().notify_exhausted(_exhausted_job()))

    assert "job-9" in caplog.text
    assert "jane@example.com" not in caplog.text
