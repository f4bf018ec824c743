"""Authenticated HTTP triggers for dispatch cycles.

The scheduler endpoint and the ops endpoint are independent adapters over the
same service; overlapping calls are safe because claiming is atomic per job.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from intake_mail_outbox.api.dependencies import get_email_outbox_service
from intake_mail_outbox.api.security import require_trigger_secret
from intake_mail_outbox.application.services import EmailOutboxService
from intake_mail_outbox.domain.errors import OutboxStoreError
from intake_mail_outbox.domain.outbox_models import DispatchResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["email outbox triggers"], dependencies=[Depends(require_trigger_secret)])


async def _run_cycle(
    service: EmailOutboxService,
    *,
    trigger: str,
    limit: int | None,
) -> DispatchResponse | JSONResponse:
    try:
        result = await service.run_dispatch_cycle(trigger=trigger, limit=limit)
    except OutboxStoreError as exc:
        logger.error("Outbox cycle via %s failed: %s", trigger, exc)
        return JSONResponse(status_code=503, content={"success": False, "error": str(exc)})
    return DispatchResponse.from_result(result)


@router.api_route(
    "/cron/email-outbox",
    methods=["GET", "POST"],
    response_model=DispatchResponse,
    status_code=200,
)
async def dispatch_from_scheduler(
    limit: int | None = Query(default=None, ge=1),
    service: EmailOutboxService = Depends(get_email_outbox_service),
) -> DispatchResponse | JSONResponse:
    """Primary scheduler trigger."""

    return await _run_cycle(service, trigger="cron", limit=limit)


@router.api_route(
    "/ops/email-outbox/dispatch",
    methods=["GET", "POST"],
    response_model=DispatchResponse,
    status_code=200,
)
async def dispatch_from_ops(
    limit: int | None = Query(default=None, ge=1),
    service: EmailOutboxService = Depends(get_email_outbox_service),
) -> DispatchResponse | JSONResponse:
    """Backup trigger for operators and secondary schedulers."""

    return await _run_cycle(service, trigger="ops", limit=limit)


__all__ = ["router"]
