"""Shared-secret authentication for trigger and operator routes."""

from __future__ import annotations

import logging
import secrets

from fastapi import Depends, Header, HTTPException

from intake_mail_outbox.api.dependencies import get_settings
from intake_mail_outbox.config import Settings

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "bearer "


def _presented_secret(authorization: str | None, cron_secret: str | None) -> str | None:
    if authorization and authorization[: len(_BEARER_PREFIX)].lower() == _BEARER_PREFIX:
        return authorization[len(_BEARER_PREFIX) :].strip()
    if cron_secret:
        return cron_secret.strip()
    return None


async def require_trigger_secret(
    authorization: str | None = Header(default=None),
    x_cron_secret: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Reject the request unless it carries the configured shared secret."""

    expected = settings.trigger_secret
    if expected is None:
        logger.error("MAIL_OUTBOX_TRIGGER_SECRET is not configured; rejecting request.")
        raise HTTPException(status_code=500, detail="Trigger secret is not configured")

    presented = _presented_secret(authorization, x_cron_secret)
    if presented is None or not secrets.compare_digest(
        presented.encode("utf-8"),
        expected.encode("utf-8"),
    ):
        raise HTTPException(status_code=401, detail="Unauthorized")


__all__ = ["require_trigger_secret"]
