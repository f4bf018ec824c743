"""Liveness route. Needs no trigger secret and never touches the outbox store."""

from fastapi import APIRouter

from intake_mail_outbox import __version__

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness probe; queue health lives under ``/outbox/health``."""

    return {"status": "ok", "service": "intake-mail-outbox", "version": __version__}


__all__ = ["router"]
