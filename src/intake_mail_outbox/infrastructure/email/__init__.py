"""Email provider adapters."""

from intake_mail_outbox.infrastructure.email.logging_email_sender import LoggingEmailSender
from intake_mail_outbox.infrastructure.email.resend_client import EmailProviderError, ResendClient
from intake_mail_outbox.infrastructure.email.resend_email_sender import ResendEmailSender

__all__ = ["EmailProviderError", "LoggingEmailSender", "ResendClient", "ResendEmailSender"]
