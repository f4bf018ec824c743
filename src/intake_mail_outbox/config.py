"""Application settings."""

from enum import StrEnum

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreBackend(StrEnum):
    """Available persistence adapters for the outbox table."""

    IN_MEMORY = "in_memory"
    POSTGRES = "postgres"


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "Intake Mail Outbox"
    api_prefix: str = ""
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "info"
    instance_id: str = "mail-outbox-local"
    store_backend: StoreBackend = StoreBackend.IN_MEMORY
    postgres_dsn: str | None = None
    postgres_pool_min_size: int = 1
    postgres_pool_max_size: int = 10
    trigger_secret: str | None = None
    max_batch_size: int = 25
    max_attempts: int = 3
    retry_base_delay_seconds: float = 60.0
    retry_max_delay_seconds: float = 3600.0
    retry_jitter_ratio: float = 0.1
    claim_staleness_seconds: float = 600.0
    send_concurrency: int = 1
    dispatch_timeout_seconds: float = 50.0
    max_error_length: int = 2000
    permanent_failure_fast_path: bool = False
    resend_api_key: str | None = None
    resend_base_url: str = "https://api.resend.com"
    resend_from_email: str = "Intake <noreply@example.com>"
    resend_reply_to: str | None = None
    email_timeout_seconds: float = 10.0
    dead_letter_webhook_url: str | None = None
    dead_letter_webhook_timeout_seconds: float = 5.0
    health_max_pending_age_seconds: float | None = 900.0
    health_max_exhausted_jobs: int | None = None
    poller_enabled: bool = False
    poller_interval_seconds: float = 60.0

    @field_validator(
        "trigger_secret",
        "resend_api_key",
        "resend_reply_to",
        "dead_letter_webhook_url",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, value: object) -> object:
        """Treat empty env var values as unset."""

        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def validate_outbox_settings(self) -> "Settings":
        """Ensure backend and dispatch settings are consistent."""

        if self.store_backend == StoreBackend.POSTGRES and not self.postgres_dsn:
            raise ValueError(
                "MAIL_OUTBOX_POSTGRES_DSN is required when MAIL_OUTBOX_STORE_BACKEND=postgres."
            )
        if self.postgres_pool_min_size < 1:
            raise ValueError("MAIL_OUTBOX_POSTGRES_POOL_MIN_SIZE must be >= 1.")
        if self.postgres_pool_max_size < self.postgres_pool_min_size:
            raise ValueError(
                "MAIL_OUTBOX_POSTGRES_POOL_MAX_SIZE must be >= MAIL_OUTBOX_POSTGRES_POOL_MIN_SIZE."
            )
        if self.max_batch_size < 1:
            raise ValueError("MAIL_OUTBOX_MAX_BATCH_SIZE must be >= 1.")
        if self.max_attempts < 1:
            raise ValueError("MAIL_OUTBOX_MAX_ATTEMPTS must be >= 1.")
        if self.retry_base_delay_seconds <= 0:
            raise ValueError("MAIL_OUTBOX_RETRY_BASE_DELAY_SECONDS must be > 0.")
        if self.retry_max_delay_seconds < self.retry_base_delay_seconds:
            raise ValueError(
                "MAIL_OUTBOX_RETRY_MAX_DELAY_SECONDS must be >= "
                "MAIL_OUTBOX_RETRY_BASE_DELAY_SECONDS."
            )
        if not 0 <= self.retry_jitter_ratio < 1:
            raise ValueError("MAIL_OUTBOX_RETRY_JITTER_RATIO must be >= 0 and < 1.")
        if self.claim_staleness_seconds <= 0:
            raise ValueError("MAIL_OUTBOX_CLAIM_STALENESS_SECONDS must be > 0.")
        if self.send_concurrency < 1:
            raise ValueError("MAIL_OUTBOX_SEND_CONCURRENCY must be >= 1.")
        if self.dispatch_timeout_seconds <= 0:
            raise ValueError("MAIL_OUTBOX_DISPATCH_TIMEOUT_SECONDS must be > 0.")
        if self.email_timeout_seconds <= 0:
            raise ValueError("MAIL_OUTBOX_EMAIL_TIMEOUT_SECONDS must be > 0.")
        if self.dead_letter_webhook_timeout_seconds <= 0:
            raise ValueError("MAIL_OUTBOX_DEAD_LETTER_WEBHOOK_TIMEOUT_SECONDS must be > 0.")
        # A send started just before the cycle deadline still runs to completion.
        longest_claim = (
            self.dispatch_timeout_seconds
            + self.email_timeout_seconds
            + self.dead_letter_webhook_timeout_seconds
        )
        if self.claim_staleness_seconds <= longest_claim:
            raise ValueError(
                "MAIL_OUTBOX_CLAIM_STALENESS_SECONDS must be > "
                "MAIL_OUTBOX_DISPATCH_TIMEOUT_SECONDS + MAIL_OUTBOX_EMAIL_TIMEOUT_SECONDS + "
                "MAIL_OUTBOX_DEAD_LETTER_WEBHOOK_TIMEOUT_SECONDS."
            )
        if self.poller_interval_seconds <= 0:
            raise ValueError("MAIL_OUTBOX_POLLER_INTERVAL_SECONDS must be > 0.")
        return self

    model_config = SettingsConfigDict(env_prefix="MAIL_OUTBOX_", extra="ignore")


__all__ = ["Settings", "StoreBackend"]
