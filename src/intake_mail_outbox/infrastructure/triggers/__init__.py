"""In-process trigger adapters."""

from intake_mail_outbox.infrastructure.triggers.outbox_poller import DispatchCycle, OutboxPoller

__all__ = ["DispatchCycle", "OutboxPoller"]
