"""Outbox store implementations."""

from intake_mail_outbox.infrastructure.repositories.in_memory_email_outbox_store import (
    InMemoryEmailOutboxStore,
)
from intake_mail_outbox.infrastructure.repositories.postgres_email_outbox_store import (
    PostgresEmailOutboxStore,
)

__all__ = ["InMemoryEmailOutboxStore", "PostgresEmailOutboxStore"]
