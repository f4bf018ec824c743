"""Top-level API router composition."""

from fastapi import APIRouter

from intake_mail_outbox.api.routes import health_router, outbox_router, triggers_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(triggers_router)
api_router.include_router(outbox_router)

__all__ = ["api_router"]
