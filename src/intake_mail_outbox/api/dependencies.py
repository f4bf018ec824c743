"""Dependency providers for FastAPI routes."""

from functools import lru_cache

from intake_mail_outbox.application.services import EmailOutboxService
from intake_mail_outbox.bootstrap import build_email_outbox_service, build_outbox_poller
from intake_mail_outbox.config import Settings
from intake_mail_outbox.infrastructure.triggers import OutboxPoller


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return singleton settings."""

    return Settings()


@lru_cache(maxsize=1)
def get_email_outbox_service() -> EmailOutboxService:
    """Return singleton service graph."""

    return build_email_outbox_service(get_settings())


@lru_cache(maxsize=1)
def get_outbox_poller() -> OutboxPoller | None:
    """Return the in-process poller, or ``None`` when disabled."""

    return build_outbox_poller(get_settings(), get_email_outbox_service())


__all__ = ["get_email_outbox_service", "get_outbox_poller", "get_settings"]
