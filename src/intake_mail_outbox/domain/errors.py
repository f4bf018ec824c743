"""Domain exceptions for outbox operations."""


class OutboxError(Exception):
    """Base class for outbox errors."""


class OutboxStoreError(OutboxError):
    """Raised when the outbox store cannot be reached or rejects a query."""


class EmailJobNotFoundError(OutboxError):
    """Raised when an outbox job cannot be found."""


class EmailJobConflictError(OutboxError):
    """Raised when an operation conflicts with the job's current state."""


class EmailJobValidationError(OutboxError):
    """Raised when an enqueue request is invalid."""


__all__ = [
    "EmailJobConflictError",
    "EmailJobNotFoundError",
    "EmailJobValidationError",
    "OutboxError",
    "OutboxStoreError",
]
