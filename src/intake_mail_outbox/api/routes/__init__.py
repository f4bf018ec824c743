"""Route modules public API."""

from intake_mail_outbox.api.routes.health import router as health_router
from intake_mail_outbox.api.routes.outbox import router as outbox_router
from intake_mail_outbox.api.routes.triggers import router as triggers_router

__all__ = ["health_router", "outbox_router", "triggers_router"]
