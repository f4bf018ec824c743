from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from intake_mail_outbox.domain.email_jobs import EmailJobStatus, EmailType, OutboxJobQuery
from intake_mail_outbox.domain.errors import OutboxStoreError
from intake_mail_outbox.infrastructure.repositories import PostgresEmailOutboxStore

_NOW = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)


def _row(**overrides: object) -> dict[str, object]:
    row: dict[str, object] = {
        "id": "job-1",
        "email_type": "script_sent",
        "recipient": "jane@example.com",
        "recipient_name": None,
        "subject": "Your script was sent",
        "rendered_body": "<p>Check your phone.</p>",
        "tags": json.dumps({"request_id": "req-1"}),
        "related_entity_id": "request-1",
        "status": "claimed",
        "attempt_count": 1,
        "next_attempt_at": _NOW,
        "claimed_at": _NOW,
        "claimed_by": "instance-a:0123456789ab",
        "last_error": "503 unavailable",
        "provider_message_id": None,
        "sent_at": None,
        "created_at": _NOW,
        "updated_at": _NOW,
    }
    row.update(overrides)
    return row


class _FakePool:
    def __init__(self, execute_result: str = "UPDATE 1") -> None:
        self.executed: list[tuple[str, tuple[object, ...]]] = []
        self._execute_result = execute_result

    async def execute(self, query: str, *args: object) -> str:
        self.executed.append((query, args))
        return self._execute_result

    async def fetch(self, query: str, *args: object) -> list[dict[str, object]]:
        self.executed.append((query, args))
        return [_row()]


class _UnreachablePool:
    async def fetchrow(self, query: str, *args: object) -> None:
        raise ConnectionRefusedError("connection refused")


def test_row_mapping_builds_job_snapshot() -> None:
    store = PostgresEmailOutboxStore(dsn="postgresql://localhost/intake")

    job = store._to_job(_row())

    assert job.email_type is EmailType.SCRIPT_SENT
    assert job.status is EmailJobStatus.CLAIMED
    assert job.payload.tags == {"request_id": "req-1"}
    assert job.claimed_by == "instance-a:0123456789ab"
    assert job.attempt_count == 1


def test_row_mapping_accepts_decoded_or_missing_tags() -> None:
    store = PostgresEmailOutboxStore(dsn="postgresql://localhost/intake")

    assert store._to_job(_row(tags={"a": "b"})).payload.tags == {"a": "b"}
    assert store._to_job(_row(tags=None)).payload.tags == {}


def test_compare_and_swap_matches_on_claim_fields() -> None:
    store = PostgresEmailOutboxStore(dsn="postgresql://localhost/intake")
    pool = _FakePool(execute_result="UPDATE 0")
    store._pool = pool
    expected = store._to_job(_row())
    updated = replace(expected, status=EmailJobStatus.SENT, claimed_at=None, claimed_by=None)

    swapped = asyncio.run(store.compare_and_swap(expected, updated))

    assert swapped is False
    _, args = pool.executed[0]
    assert args[:5] == ("job-1", "claimed", _NOW, "instance-a:0123456789ab", 1)
    assert args[5] == "sent"


def test_connection_failures_surface_as_store_errors() -> None:
    store = PostgresEmailOutboxStore(dsn="postgresql://localhost/intake")
    store._pool = _UnreachablePool()

    with pytest.raises(OutboxStoreError):
        asyncio.run(store.get_job("job-1"))


def _normalized(query: str) -> str:
    return " ".join(query.split())


def test_claimable_selection_includes_stale_claims_oldest_due_first() -> None:
    store = PostgresEmailOutboxStore(dsn="postgresql://localhost/intake")
    pool = _FakePool()
    store._pool = pool
    stale_before = _NOW - timedelta(minutes=10)

    jobs = asyncio.run(
        store.select_claimable_jobs(now=_NOW, stale_before=stale_before, limit=25)
    )

    assert [job.id for job in jobs] == ["job-1"]
    query, args = pool.executed[0]
    sql = _normalized(query)
    assert (
        "WHERE ( status IN ('pending', 'failed_retryable') AND next_attempt_at <= $1 ) "
        "OR ( status = 'claimed' AND claimed_at <= $2 )"
    ) in sql
    assert "ORDER BY next_attempt_at ASC, created_at ASC, id ASC LIMIT $3" in sql
    assert args == (_NOW, stale_before, 25)


def test_claimable_selection_skips_query_for_empty_limit() -> None:
    store = PostgresEmailOutboxStore(dsn="postgresql://localhost/intake")
    pool = _FakePool()
    store._pool = pool

    assert asyncio.run(store.select_claimable_jobs(now=_NOW, stale_before=_NOW, limit=0)) == []
    assert pool.executed == []


def test_list_jobs_numbers_paging_placeholders_after_filters() -> None:
    store = PostgresEmailOutboxStore(dsn="postgresql://localhost/intake")
    pool = _FakePool()
    store._pool = pool

    asyncio.run(
        store.list_jobs(
            OutboxJobQuery(
                status=EmailJobStatus.SENT,
                recipient=" Jane@Example.com ",
                limit=10,
                offset=20,
            )
        )
    )

    query, args = pool.executed[0]
    sql = _normalized(query)
    assert "WHERE status = $1 AND lower(recipient) = lower($2)" in sql
    assert "ORDER BY created_at DESC, id DESC LIMIT $3 OFFSET $4" in sql
    assert args == ("sent", "Jane@Example.com", 10, 20)


def test_list_jobs_without_filters_pages_with_first_placeholders() -> None:
    store = PostgresEmailOutboxStore(dsn="postgresql://localhost/intake")
    pool = _FakePool()
    store._pool = pool

    asyncio.run(store.list_jobs(OutboxJobQuery()))

    query, args = pool.executed[0]
    sql = _normalized(query)
    assert "WHERE" not in sql
    assert "LIMIT $1 OFFSET $2" in sql
    assert args == (50, 0)
