"""
Pure escalation evaluation.

Contract:
    ``compute_deadline()`` and ``evaluate_escalation()`` are PURE -- no I/O,
    no side effects.  The sweep loads a request and its current step,
    passes the evaluation instant in, and acts on the returned decision.

Architecture: approval_batch/domain.  ZERO I/O.

Rules:
    - A step with no ``timeout_hours`` (None or <= 0) has no SLA.
    - ``deadline = submitted_at + timeout_hours``.  The deadline is measured
      from submission for every step.
    - Overdue means strictly after the deadline (``now > deadline``).
    - Only pending requests are ever escalated.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from approval_kernel.domain.approval import ActionType, ApprovalRequest
from approval_kernel.domain.workflow import EscalationAction, Step

_COMMENT_PREFIX = {
    EscalationAction.AUTO_APPROVE: "Auto-approved",
    EscalationAction.AUTO_REJECT: "Auto-rejected",
    EscalationAction.NOTIFY: "Escalated",
}


@dataclass(frozen=True)
class EscalationDecision:
    """What the sweep should do with one overdue request."""

    request_id: UUID
    step_order: int
    action: EscalationAction
    deadline: datetime
    comment: str

    @property
    def transition_action(self) -> ActionType | None:
        """The tracker transition to apply, or None for a reminder only."""
        if self.action is EscalationAction.AUTO_APPROVE:
            return ActionType.APPROVE
        if self.action is EscalationAction.AUTO_REJECT:
            return ActionType.REJECT
        return None


def compute_deadline(submitted_at: datetime, timeout_hours: int | None) -> datetime | None:
    """Deadline for a step, or None when the step has no SLA."""
    if timeout_hours is None or timeout_hours <= 0:
        return None
    return submitted_at + timedelta(hours=timeout_hours)


def escalation_comment(action: EscalationAction, timeout_hours: int) -> str:
    """Standard audit comment for a system-originated escalation."""
    return f"{_COMMENT_PREFIX[action]} due to timeout ({timeout_hours}h SLA exceeded)"


def evaluate_escalation(
    request: ApprovalRequest,
    step: Step,
    now: datetime,
) -> EscalationDecision | None:
    """Decide whether ``request`` (pending at ``step``) must escalate at ``now``.

    Returns None when the request is not pending, the step has no SLA, or
    the deadline has not passed.
    """
    if not request.is_pending or step.step_order != request.current_step_order:
        return None
    deadline = compute_deadline(request.submitted_at, step.timeout_hours)
    if deadline is None or now <= deadline:
        return None
    return EscalationDecision(
        request_id=request.request_id,
        step_order=step.step_order,
        action=step.escalation_action,
        deadline=deadline,
        comment=escalation_comment(step.escalation_action, step.timeout_hours),
    )
