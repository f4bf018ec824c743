"""Application bootstrap/wiring."""

import logging
from functools import partial

from intake_mail_outbox.application.dispatch import ClaimCoordinator, DispatchWorker
from intake_mail_outbox.application.services import EmailOutboxService
from intake_mail_outbox.config import Settings, StoreBackend
from intake_mail_outbox.domain.clock import SystemClock
from intake_mail_outbox.domain.ports import DeadLetterNotifier, EmailOutboxStore, EmailSender
from intake_mail_outbox.domain.retry_policy import RetryPolicy
from intake_mail_outbox.infrastructure.alerts import (
    LoggingDeadLetterNotifier,
    WebhookDeadLetterNotifier,
)
from intake_mail_outbox.infrastructure.email import (
    LoggingEmailSender,
    ResendClient,
    ResendEmailSender,
)
from intake_mail_outbox.infrastructure.repositories import (
    InMemoryEmailOutboxStore,
    PostgresEmailOutboxStore,
)
from intake_mail_outbox.infrastructure.triggers import OutboxPoller

logger = logging.getLogger(__name__)


def _build_store(settings: Settings) -> EmailOutboxStore:
    if settings.store_backend == StoreBackend.POSTGRES:
        if settings.postgres_dsn is None:
            raise ValueError(
                "MAIL_OUTBOX_POSTGRES_DSN is required when MAIL_OUTBOX_STORE_BACKEND=postgres."
            )
        return PostgresEmailOutboxStore(
            dsn=settings.postgres_dsn,
            min_pool_size=settings.postgres_pool_min_size,
            max_pool_size=settings.postgres_pool_max_size,
        )
    return InMemoryEmailOutboxStore()


def _build_email_sender(settings: Settings) -> EmailSender:
    if settings.resend_api_key is None:
        logger.warning(
            "MAIL_OUTBOX_RESEND_API_KEY is not set. Emails are logged instead of sent."
        )
        return LoggingEmailSender()
    return ResendEmailSender(
        ResendClient(
            api_key=settings.resend_api_key,
            base_url=settings.resend_base_url,
            timeout_seconds=settings.email_timeout_seconds,
        ),
        from_email=settings.resend_from_email,
        reply_to=settings.resend_reply_to,
    )


def _build_dead_letter_notifier(settings: Settings) -> DeadLetterNotifier:
    if settings.dead_letter_webhook_url is None:
        return LoggingDeadLetterNotifier()
    return WebhookDeadLetterNotifier(
        url=settings.dead_letter_webhook_url,
        timeout_seconds=settings.dead_letter_webhook_timeout_seconds,
    )


def build_email_outbox_service(settings: Settings) -> EmailOutboxService:
    """Compose service graph."""

    store = _build_store(settings)
    clock = SystemClock()
    notifier = _build_dead_letter_notifier(settings)
    retry_policy = RetryPolicy(
        max_attempts=settings.max_attempts,
        base_delay_seconds=settings.retry_base_delay_seconds,
        max_delay_seconds=settings.retry_max_delay_seconds,
        jitter_ratio=settings.retry_jitter_ratio,
    )
    claim_coordinator = ClaimCoordinator(
        store,
        retry_policy,
        clock=clock,
        max_batch_size=settings.max_batch_size,
        staleness_seconds=settings.claim_staleness_seconds,
        dead_letter_notifier=notifier,
    )
    dispatch_worker = DispatchWorker(
        store,
        _build_email_sender(settings),
        retry_policy,
        claim_coordinator,
        clock=clock,
        dead_letter_notifier=notifier,
        send_concurrency=settings.send_concurrency,
        max_error_length=settings.max_error_length,
        permanent_failure_fast_path=settings.permanent_failure_fast_path,
    )

    return EmailOutboxService(
        instance_id=settings.instance_id,
        store=store,
        claim_coordinator=claim_coordinator,
        dispatch_worker=dispatch_worker,
        clock=clock,
        dispatch_timeout_seconds=settings.dispatch_timeout_seconds,
        max_pending_age_seconds=settings.health_max_pending_age_seconds,
        max_exhausted_jobs=settings.health_max_exhausted_jobs,
    )


def build_outbox_poller(settings: Settings, service: EmailOutboxService) -> OutboxPoller | None:
    """Return the in-process trigger when enabled."""

    if not settings.poller_enabled:
        return None
    return OutboxPoller(
        partial(service.run_dispatch_cycle, trigger="poller"),
        interval_seconds=settings.poller_interval_seconds,
        batch_size=settings.max_batch_size,
    )


__all__ = ["build_email_outbox_service", "build_outbox_poller"]
