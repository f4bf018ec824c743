"""HTTP API package."""

from intake_mail_outbox.api.router import api_router

__all__ = ["api_router"]
