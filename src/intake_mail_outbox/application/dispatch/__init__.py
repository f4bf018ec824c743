"""Claim and dispatch components of the outbox engine."""

from intake_mail_outbox.application.dispatch.claim_coordinator import (
    ClaimCoordinator,
    new_worker_id,
)
from intake_mail_outbox.application.dispatch.dispatch_worker import DispatchWorker

__all__ = ["ClaimCoordinator", "DispatchWorker", "new_worker_id"]
