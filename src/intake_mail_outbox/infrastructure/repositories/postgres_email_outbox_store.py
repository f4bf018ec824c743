"""PostgreSQL outbox store."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any
from uuid import uuid4

import asyncpg  # type: ignore[import-untyped]

from intake_mail_outbox.domain.email_jobs import (
    EmailJob,
    EmailJobStatus,
    EmailPayload,
    EmailType,
    NewEmailJob,
    OutboxJobQuery,
)
from intake_mail_outbox.domain.errors import OutboxStoreError
from intake_mail_outbox.domain.ports import EmailOutboxStore

_SELECT_COLUMNS = """
    id,
    email_type,
    recipient,
    recipient_name,
    subject,
    rendered_body,
    tags,
    related_entity_id,
    status,
    attempt_count,
    next_attempt_at,
    claimed_at,
    claimed_by,
    last_error,
    provider_message_id,
    sent_at,
    created_at,
    updated_at
"""

_STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, TimeoutError)


class PostgresEmailOutboxStore(EmailOutboxStore):
    """Outbox store backed by PostgreSQL."""

    def __init__(
        self,
        dsn: str,
        min_pool_size: int = 1,
        max_pool_size: int = 10,
    ) -> None:
        self._dsn = dsn
        self._min_pool_size = min_pool_size
        self._max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None
        self._pool_lock = asyncio.Lock()

    async def insert_job(self, job: NewEmailJob, *, now: datetime) -> EmailJob:
        """Persist a new pending job."""

        async with self._store_errors("insert"):
            pool = await self._get_pool()
            async with pool.acquire() as connection:
                return await self.insert_job_on_connection(connection, job, now=now)

    async def insert_job_on_connection(
        self,
        connection: asyncpg.Connection,
        job: NewEmailJob,
        *,
        now: datetime,
    ) -> EmailJob:
        """Insert on a caller-owned connection.

        Lets the intake workflow write the job inside the same transaction as
        the state change that triggers the email.
        """

        row = await connection.fetchrow(
            f"""
            INSERT INTO email_outbox (
                id,
                email_type,
                recipient,
                recipient_name,
                subject,
                rendered_body,
                tags,
                related_entity_id,
                status,
                attempt_count,
                next_attempt_at,
                created_at,
                updated_at
            ) VALUES (
                $1, $2, $3, $4, $5, $6, $7::jsonb, $8, 'pending', 0, $9, $9, $9
            )
            RETURNING {_SELECT_COLUMNS}
            """,
            str(uuid4()),
            job.email_type.value,
            job.payload.recipient,
            job.payload.recipient_name,
            job.payload.subject,
            job.payload.rendered_body,
            json.dumps(job.payload.tags),
            job.related_entity_id,
            now,
        )
        return self._to_job(row)

    async def get_job(self, job_id: str) -> EmailJob | None:
        """Return by id."""

        async with self._store_errors("lookup"):
            pool = await self._get_pool()
            row = await pool.fetchrow(
                f"SELECT {_SELECT_COLUMNS} FROM email_outbox WHERE id = $1",
                job_id,
            )
        if row is None:
            return None
        return self._to_job(row)

    async def list_jobs(self, query: OutboxJobQuery) -> list[EmailJob]:
        """Return filtered jobs, newest first."""

        clauses: list[str] = []
        params: list[Any] = []
        if query.status is not None:
            params.append(query.status.value)
            clauses.append(f"status = ${len(params)}")
        if query.email_type is not None:
            params.append(query.email_type.value)
            clauses.append(f"email_type = ${len(params)}")
        if query.recipient is not None:
            params.append(query.recipient.strip())
            clauses.append(f"lower(recipient) = lower(${len(params)})")
        if query.related_entity_id is not None:
            params.append(query.related_entity_id)
            clauses.append(f"related_entity_id = ${len(params)}")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.extend([max(query.limit, 0), max(query.offset, 0)])

        async with self._store_errors("listing"):
            pool = await self._get_pool()
            rows = await pool.fetch(
                f"""
                SELECT {_SELECT_COLUMNS}
                FROM email_outbox
                {where}
                ORDER BY created_at DESC, id DESC
                LIMIT ${len(params) - 1} OFFSET ${len(params)}
                """,
                *params,
            )
        return [self._to_job(row) for row in rows]

    async def select_claimable_jobs(
        self,
        *,
        now: datetime,
        stale_before: datetime,
        limit: int,
    ) -> list[EmailJob]:
        """Return due jobs and stale claims, oldest due first."""

        if limit <= 0:
            return []

        async with self._store_errors("claim selection"):
            pool = await self._get_pool()
            rows = await pool.fetch(
                f"""
                SELECT {_SELECT_COLUMNS}
                FROM email_outbox
                WHERE (
                    status IN ('pending', 'failed_retryable')
                    AND next_attempt_at <= $1
                ) OR (
                    status = 'claimed'
                    AND claimed_at <= $2
                )
                ORDER BY next_attempt_at ASC, created_at ASC, id ASC
                LIMIT $3
                """,
                now,
                stale_before,
                limit,
            )
        return [self._to_job(row) for row in rows]

    async def compare_and_swap(self, expected: EmailJob, updated: EmailJob) -> bool:
        """Conditional single-row update; zero rows means another writer won."""

        async with self._store_errors("conditional update"):
            pool = await self._get_pool()
            result = await pool.execute(
                """
                UPDATE email_outbox
                SET
                    status = $6,
                    attempt_count = $7,
                    next_attempt_at = $8,
                    claimed_at = $9,
                    claimed_by = $10,
                    last_error = $11,
                    provider_message_id = $12,
                    sent_at = $13,
                    updated_at = $14
                WHERE id = $1
                  AND status = $2
                  AND claimed_at IS NOT DISTINCT FROM $3
                  AND claimed_by IS NOT DISTINCT FROM $4
                  AND attempt_count = $5
                """,
                expected.id,
                expected.status.value,
                expected.claimed_at,
                expected.claimed_by,
                expected.attempt_count,
                updated.status.value,
                updated.attempt_count,
                updated.next_attempt_at,
                updated.claimed_at,
                updated.claimed_by,
                updated.last_error,
                updated.provider_message_id,
                updated.sent_at,
                updated.updated_at,
            )
        return result.endswith(" 1")

    async def find_sent_job_id(
        self,
        *,
        related_entity_id: str,
        email_type: EmailType,
        exclude_job_id: str,
    ) -> str | None:
        """Return another sent job with the same intent."""

        async with self._store_errors("duplicate lookup"):
            pool = await self._get_pool()
            value = await pool.fetchval(
                """
                SELECT id
                FROM email_outbox
                WHERE related_entity_id = $1
                  AND email_type = $2
                  AND status = 'sent'
                  AND id <> $3
                LIMIT 1
                """,
                related_entity_id,
                email_type.value,
                exclude_job_id,
            )
        return None if value is None else str(value)

    async def count_by_status(self) -> dict[EmailJobStatus, int]:
        """Return counts for every status, including empty ones."""

        async with self._store_errors("status counts"):
            pool = await self._get_pool()
            rows = await pool.fetch(
                "SELECT status, COUNT(*) AS total FROM email_outbox GROUP BY status",
            )
        counts = dict.fromkeys(EmailJobStatus, 0)
        for row in rows:
            counts[EmailJobStatus(str(row["status"]))] = int(row["total"])
        return counts

    async def oldest_pending_created_at(self) -> datetime | None:
        """Return creation time of the oldest undelivered job."""

        async with self._store_errors("oldest pending lookup"):
            pool = await self._get_pool()
            value = await pool.fetchval(
                """
                SELECT MIN(created_at)
                FROM email_outbox
                WHERE status IN ('pending', 'failed_retryable')
                """,
            )
        return value

    async def close(self) -> None:
        """Close the pool if it was initialized."""

        pool = self._pool
        self._pool = None
        if pool is not None:
            await pool.close()

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is not None:
            return self._pool

        async with self._pool_lock:
            if self._pool is None:
                pool = await asyncpg.create_pool(
                    dsn=self._dsn,
                    min_size=self._min_pool_size,
                    max_size=self._max_pool_size,
                )
                await self._ensure_schema(pool)
                self._pool = pool
        assert self._pool is not None
        return self._pool

    async def _ensure_schema(self, pool: asyncpg.Pool) -> None:
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS email_outbox (
                id TEXT PRIMARY KEY,
                email_type TEXT NOT NULL,
                recipient TEXT NOT NULL,
                recipient_name TEXT,
                subject TEXT NOT NULL,
                rendered_body TEXT NOT NULL,
                tags JSONB NOT NULL DEFAULT '{}'::jsonb,
                related_entity_id TEXT,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'claimed', 'sent', 'failed_retryable', 'exhausted')),
                attempt_count INTEGER NOT NULL DEFAULT 0 CHECK (attempt_count >= 0),
                next_attempt_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                claimed_at TIMESTAMPTZ,
                claimed_by TEXT,
                last_error TEXT,
                provider_message_id TEXT,
                sent_at TIMESTAMPTZ,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
            CREATE INDEX IF NOT EXISTS idx_email_outbox_due
                ON email_outbox (next_attempt_at, created_at, id)
                WHERE status IN ('pending', 'failed_retryable');
            CREATE INDEX IF NOT EXISTS idx_email_outbox_claimed
                ON email_outbox (claimed_at)
                WHERE status = 'claimed';
            CREATE INDEX IF NOT EXISTS idx_email_outbox_sent_intent
                ON email_outbox (related_entity_id, email_type)
                WHERE status = 'sent';
            CREATE INDEX IF NOT EXISTS idx_email_outbox_created
                ON email_outbox (created_at DESC, id DESC);
            """
        )

    @asynccontextmanager
    async def _store_errors(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except _STORE_ERRORS as exc:
            raise OutboxStoreError(f"Outbox store {operation} failed: {exc}") from exc

    def _to_job(self, row: Mapping[str, Any]) -> EmailJob:
        return EmailJob(
            id=str(row["id"]),
            email_type=EmailType(str(row["email_type"])),
            payload=EmailPayload(
                recipient=str(row["recipient"]),
                recipient_name=self._as_optional_str(row["recipient_name"]),
                subject=str(row["subject"]),
                rendered_body=str(row["rendered_body"]),
                tags=self._decode_tags(row["tags"]),
            ),
            related_entity_id=self._as_optional_str(row["related_entity_id"]),
            status=EmailJobStatus(str(row["status"])),
            attempt_count=int(row["attempt_count"]),
            next_attempt_at=row["next_attempt_at"],
            claimed_at=row["claimed_at"],
            claimed_by=self._as_optional_str(row["claimed_by"]),
            last_error=self._as_optional_str(row["last_error"]),
            provider_message_id=self._as_optional_str(row["provider_message_id"]),
            sent_at=row["sent_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _decode_tags(self, value: object) -> dict[str, str]:
        decoded = json.loads(value) if isinstance(value, str) else value
        if decoded is None:
            return {}
        if not isinstance(decoded, dict):
            raise TypeError(f"Expected dict payload for tags, got {type(decoded)!r}.")
        return {str(key): str(item) for key, item in decoded.items()}

    def _as_optional_str(self, value: object) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            return value
        raise TypeError(f"Expected optional string value, got {type(value)!r}.")


__all__ = ["PostgresEmailOutboxStore"]
