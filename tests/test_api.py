from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from intake_mail_outbox import __version__
from intake_mail_outbox.api.dependencies import (
    get_email_outbox_service,
    get_outbox_poller,
    get_settings,
)
from intake_mail_outbox.domain.errors import OutboxStoreError
from intake_mail_outbox.main import app

SECRET = "cron-secret-for-tests"
AUTH = {"Authorization": f"Bearer {SECRET}"}


def _clear_caches() -> None:
    get_outbox_poller.cache_clear()
    get_email_outbox_service.cache_clear()
    get_settings.cache_clear()


def _enqueue_payload(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "emailType": "request_approved",
        "recipient": "jane@example.com",
        "recipientName": "Jane Citizen",
        "subject": "Your request was approved",
        "renderedBody": "<p>Approved</p>",
        "relatedEntityId": "request-1",
        "tags": {"request_id": "request-1"},
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    monkeypatch.setenv("MAIL_OUTBOX_TRIGGER_SECRET", SECRET)
    monkeypatch.delenv("MAIL_OUTBOX_RESEND_API_KEY", raising=False)
    monkeypatch.delenv("MAIL_OUTBOX_STORE_BACKEND", raising=False)
    _clear_caches()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    _clear_caches()


def test_healthz_needs_no_secret(client: TestClient) -> None:
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "service": "intake-mail-outbox",
        "version": __version__,
    }


@pytest.mark.parametrize(
    "headers",
    [{}, {"Authorization": "Bearer wrong"}, {"X-Cron-Secret": "wrong"}],
)
def test_trigger_rejects_missing_or_wrong_secret(
    client: TestClient, headers: dict[str, str]
) -> None:
    response = client.get("/cron/email-outbox", headers=headers)

    assert response.status_code == 401


def test_trigger_without_configured_secret_returns_500(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("MAIL_OUTBOX_TRIGGER_SECRET", raising=False)
    _clear_caches()

    with TestClient(app) as test_client:
        response = test_client.post("/cron/email-outbox", headers=AUTH)
    _clear_caches()

    assert response.status_code == 500


def test_enqueue_then_trigger_sends_email(client: TestClient) -> None:
    created = client.post("/outbox/jobs", json=_enqueue_payload(), headers=AUTH)

    assert created.status_code == 201
    job = created.json()
    assert job["status"] == "pending"
    assert job["attemptCount"] == 0
    assert "renderedBody" not in job

    triggered = client.get("/cron/email-outbox", headers=AUTH)
    assert triggered.status_code == 200
    assert triggered.json() == {
        "success": True,
        "processed": 1,
        "sent": 1,
        "failed": 0,
        "skipped": 0,
        "exhausted": 0,
        "released": 0,
    }

    detail = client.get(f"/outbox/jobs/{job['id']}", headers=AUTH)
    assert detail.status_code == 200
    assert detail.json()["status"] == "sent"
    assert detail.json()["providerMessageId"].startswith("dev-")

    again = client.post("/ops/email-outbox/dispatch", headers={"X-Cron-Secret": SECRET})
    assert again.status_code == 200
    assert again.json()["processed"] == 0


def test_stats_as_json_and_headers(client: TestClient) -> None:
    client.post("/outbox/jobs", json=_enqueue_payload(), headers=AUTH)

    response = client.get("/outbox/stats", headers=AUTH)
    assert response.status_code == 200
    body = response.json()
    assert body["pending"] == 1
    assert body["failedRetryable"] == 0
    assert body["exhausted"] == 0
    assert body["oldestPendingAgeSeconds"] is not None

    head = client.head("/outbox/stats", headers=AUTH)
    assert head.status_code == 200
    assert head.headers["X-Pending-Emails"] == "1"
    assert head.headers["X-Exhausted-Emails"] == "0"


def test_stats_require_secret(client: TestClient) -> None:
    assert client.get("/outbox/stats").status_code == 401


def test_health_reports_healthy_outbox(client: TestClient) -> None:
    response = client.get("/outbox/health", headers=AUTH)

    assert response.status_code == 200
    assert response.json()["healthy"] is True
    assert response.json()["alerts"] == []


def test_enqueue_rejects_invalid_recipient(client: TestClient) -> None:
    response = client.post(
        "/outbox/jobs",
        json=_enqueue_payload(recipient="not-an-email"),
        headers=AUTH,
    )

    assert response.status_code == 400
    assert "Invalid recipient" in response.json()["detail"]


def test_enqueue_rejects_unknown_email_type(client: TestClient) -> None:
    response = client.post(
        "/outbox/jobs",
        json=_enqueue_payload(emailType="newsletter"),
        headers=AUTH,
    )

    assert response.status_code == 422


def test_list_jobs_filters_by_related_entity(client: TestClient) -> None:
    client.post("/outbox/jobs", json=_enqueue_payload(), headers=AUTH)
    client.post(
        "/outbox/jobs",
        json=_enqueue_payload(relatedEntityId="request-2"),
        headers=AUTH,
    )

    response = client.get("/outbox/jobs", params={"relatedEntityId": "request-2"}, headers=AUTH)

    assert response.status_code == 200
    jobs = response.json()["jobs"]
    assert len(jobs) == 1
    assert jobs[0]["relatedEntityId"] == "request-2"


def test_list_jobs_rejects_bad_limit(client: TestClient) -> None:
    response = client.get("/outbox/jobs", params={"limit": 0}, headers=AUTH)

    assert response.status_code == 400


def test_unknown_job_returns_404(client: TestClient) -> None:
    assert client.get("/outbox/jobs/missing", headers=AUTH).status_code == 404


def test_resend_of_pending_job_returns_409(client: TestClient) -> None:
    job = client.post("/outbox/jobs", json=_enqueue_payload(), headers=AUTH).json()

    response = client.post(f"/outbox/jobs/{job['id']}/resend", headers=AUTH)

    assert response.status_code == 409


def test_trigger_reports_store_failure_as_503(client: TestClient) -> None:
    class _UnavailableService:
        async def run_dispatch_cycle(self, *, trigger: str, limit: int | None = None) -> None:
            raise OutboxStoreError("Outbox store claim selection failed: connection refused")

    app.dependency_overrides[get_email_outbox_service] = _UnavailableService

    response = client.get("/cron/email-outbox", headers=AUTH)

    assert response.status_code == 503
    assert response.json() == {
        "success": False,
        "error": "Outbox store claim selection failed: connection refused",
    }
