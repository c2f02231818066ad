"""approval_batch.services -- Escalation sweep runner and scheduler loop."""

from approval_batch.services.escalation_scheduler import EscalationScheduler, SweepResult

__all__ = ["EscalationScheduler", "SweepResult"]
