"""Application services."""

from intake_mail_outbox.application.services.email_outbox_service import EmailOutboxService

__all__ = ["EmailOutboxService"]
