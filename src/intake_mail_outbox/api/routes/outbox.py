"""Outbox stats, health and job inspection routes."""

from __future__ import annotations

from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Response
from fastapi.responses import JSONResponse

from intake_mail_outbox.api.dependencies import get_email_outbox_service
from intake_mail_outbox.api.security import require_trigger_secret
from intake_mail_outbox.application.services import EmailOutboxService
from intake_mail_outbox.domain.email_jobs import EmailJobStatus, EmailType, OutboxJobQuery
from intake_mail_outbox.domain.errors import (
    EmailJobConflictError,
    EmailJobNotFoundError,
    EmailJobValidationError,
    OutboxStoreError,
)
from intake_mail_outbox.domain.outbox_models import (
    EmailJobListResponse,
    EmailJobResponse,
    EnqueueEmailRequest,
    OutboxHealthResponse,
    OutboxStatsResponse,
)

router = APIRouter(
    prefix="/outbox",
    tags=["email outbox"],
    dependencies=[Depends(require_trigger_secret)],
)


def _raise_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, EmailJobNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, EmailJobConflictError):
        raise HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, EmailJobValidationError):
        raise HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, OutboxStoreError):
        raise HTTPException(status_code=503, detail=str(exc))
    raise HTTPException(status_code=500, detail="Unexpected email outbox error")


@router.get("/stats", response_model=OutboxStatsResponse, status_code=200)
async def get_outbox_stats(
    service: EmailOutboxService = Depends(get_email_outbox_service),
) -> OutboxStatsResponse:
    """Job counts by status."""

    try:
        stats = await service.get_stats()
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return OutboxStatsResponse.from_stats(stats)


@router.head("/stats", status_code=200)
async def head_outbox_stats(
    service: EmailOutboxService = Depends(get_email_outbox_service),
) -> Response:
    """Job counts as response headers for lightweight polling."""

    try:
        stats = await service.get_stats()
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)

    headers = {
        "X-Pending-Emails": str(stats.pending),
        "X-Claimed-Emails": str(stats.claimed),
        "X-Sent-Emails": str(stats.sent),
        "X-Failed-Retryable-Emails": str(stats.failed_retryable),
        "X-Exhausted-Emails": str(stats.exhausted),
    }
    if stats.oldest_pending_age_seconds is not None:
        headers["X-Oldest-Pending-Age-Seconds"] = f"{stats.oldest_pending_age_seconds:.0f}"
    return Response(status_code=200, headers=headers)


@router.get("/health", response_model=OutboxHealthResponse, status_code=200)
async def get_outbox_health(
    service: EmailOutboxService = Depends(get_email_outbox_service),
) -> OutboxHealthResponse | JSONResponse:
    """Return 503 while any alert threshold is exceeded."""

    try:
        health = await service.get_health()
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)

    body = OutboxHealthResponse.from_health(health)
    if not health.healthy:
        return JSONResponse(
            status_code=503,
            content=body.model_dump(mode="json", by_alias=True),
        )
    return body


@router.get("/jobs", response_model=EmailJobListResponse, status_code=200)
async def list_outbox_jobs(
    status: EmailJobStatus | None = Query(default=None),
    email_type: EmailType | None = Query(default=None, alias="emailType"),
    recipient: str | None = Query(default=None),
    related_entity_id: str | None = Query(default=None, alias="relatedEntityId"),
    limit: int = Query(default=50),
    offset: int = Query(default=0),
    service: EmailOutboxService = Depends(get_email_outbox_service),
) -> EmailJobListResponse:
    """List jobs, newest first."""

    query = OutboxJobQuery(
        status=status,
        email_type=email_type,
        recipient=recipient,
        related_entity_id=related_entity_id,
        limit=limit,
        offset=offset,
    )
    try:
        jobs = await service.list_jobs(query)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return EmailJobListResponse(jobs=[EmailJobResponse.from_job(job) for job in jobs])


@router.post("/jobs", response_model=EmailJobResponse, status_code=201)
async def enqueue_outbox_job(
    request: EnqueueEmailRequest,
    service: EmailOutboxService = Depends(get_email_outbox_service),
) -> EmailJobResponse:
    """Queue a rendered email for delivery."""

    try:
        job = await service.enqueue(request.to_new_job())
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return EmailJobResponse.from_job(job)


@router.get("/jobs/{id}", response_model=EmailJobResponse, status_code=200)
async def get_outbox_job(
    id: str = Path(...),
    service: EmailOutboxService = Depends(get_email_outbox_service),
) -> EmailJobResponse:
    """Get one job."""

    try:
        job = await service.get_job(id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return EmailJobResponse.from_job(job)


@router.post("/jobs/{id}/resend", response_model=EmailJobResponse, status_code=201)
async def resend_outbox_job(
    id: str = Path(...),
    service: EmailOutboxService = Depends(get_email_outbox_service),
) -> EmailJobResponse:
    """Queue a fresh copy of an exhausted job."""

    try:
        job = await service.resend_exhausted_job(id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return EmailJobResponse.from_job(job)


__all__ = ["router"]
