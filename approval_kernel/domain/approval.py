"""
Approval domain types (``approval_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the approval request state machine: statuses,
action kinds, immutable request/action snapshots, the acting identity,
and ``plan_transition`` -- the single place that decides what an action
does to a request.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  May import
only from ``domain/workflow`` and ``exceptions``.

Invariants enforced
-------------------
* ``pending`` is the only non-terminal status; terminal statuses have no
  outgoing edges (``APPROVAL_TRANSITIONS``).
* approve at step k advances to k+1, or completes ``approved`` at the
  last step.
* reject completes ``rejected`` at any step; send_back ends ``returned``.
* comment never changes status or step.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable
from uuid import UUID

from approval_kernel.domain.workflow import Step, WorkflowDefinition
from approval_kernel.exceptions import UnsupportedActionError


# =========================================================================
# Status lifecycle
# =========================================================================


class ApprovalStatus(str, Enum):
    """Approval request lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    RETURNED = "returned"


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.PENDING,
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
        ApprovalStatus.RETURNED,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
    ApprovalStatus.RETURNED: frozenset(),
}

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
    ApprovalStatus.RETURNED,
})


class ActionType(str, Enum):
    """Kinds of audit records appended to a request."""

    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    SEND_BACK = "send_back"
    COMMENT = "comment"
    ESCALATE = "escalate"
    DELEGATE = "delegate"


HUMAN_ACTIONS: tuple[ActionType, ...] = (
    ActionType.APPROVE,
    ActionType.REJECT,
    ActionType.SEND_BACK,
    ActionType.COMMENT,
)

SYSTEM_TRANSITION_ACTIONS: tuple[ActionType, ...] = (
    ActionType.APPROVE,
    ActionType.REJECT,
)

COMMENT_REQUIRED_ACTIONS: frozenset[ActionType] = frozenset({
    ActionType.REJECT,
    ActionType.SEND_BACK,
})

SUBMIT_COMMENT = "Submitted for approval"


def parse_action(
    action: str | ActionType,
    allowed: Iterable[ActionType] = HUMAN_ACTIONS,
) -> ActionType:
    """Coerce ``action`` to an ``ActionType`` permitted by the caller."""
    allowed = tuple(allowed)
    try:
        parsed = ActionType(action)
    except ValueError:
        parsed = None
    if parsed is None or parsed not in allowed:
        raise UnsupportedActionError(
            getattr(action, "value", str(action)),
            tuple(a.value for a in allowed),
        )
    return parsed


def is_blank(comment: str | None) -> bool:
    return comment is None or not comment.strip()


# =========================================================================
# Identity
# =========================================================================


@dataclass(frozen=True)
class Identity:
    """An already-authenticated actor: user id plus current role set."""

    user_id: str
    roles: frozenset[str] = frozenset()

    @classmethod
    def of(cls, user_id: str, roles: Iterable[str] | None = None) -> Identity:
        return cls(user_id=user_id, roles=frozenset(roles or ()))


# =========================================================================
# Request and action records
# =========================================================================


@dataclass(frozen=True)
class ApprovalActionRecord:
    """Immutable audit record of something that happened to a request."""

    action_id: UUID
    request_id: UUID
    step_id: UUID | None
    user_id: str | None
    action: ActionType
    comment: str | None = None
    action_date: datetime | None = None
    sequence: int = 0

    @property
    def is_system(self) -> bool:
        return self.user_id is None


@dataclass(frozen=True)
class ApprovalRequest:
    """Immutable snapshot of an approval request."""

    request_id: UUID
    entity_type: str
    entity_id: str
    entity_number: str | None
    workflow_id: UUID
    status: ApprovalStatus
    current_step_id: UUID
    current_step_order: int
    submitted_by: str | None
    submitted_at: datetime
    completed_at: datetime | None = None
    escalated_at: datetime | None = None
    escalation_count: int = 0

    @property
    def is_pending(self) -> bool:
        return self.status is ApprovalStatus.PENDING


# =========================================================================
# Transition planning
# =========================================================================


@dataclass(frozen=True)
class TransitionPlan:
    """What applying an action to a pending request will do.

    ``next_step`` is the step the request moves to (approve with a
    following step), otherwise None and the request keeps its step.
    """

    action: ActionType
    new_status: ApprovalStatus
    next_step: Step | None = None

    @property
    def changes_state(self) -> bool:
        return self.action is not ActionType.COMMENT

    @property
    def is_terminal(self) -> bool:
        return self.new_status in TERMINAL_APPROVAL_STATUSES

    @property
    def advances(self) -> bool:
        return self.next_step is not None


def plan_transition(
    workflow: WorkflowDefinition,
    current_step_order: int,
    action: ActionType,
) -> TransitionPlan:
    """Decide the effect of ``action`` on a request pending at ``current_step_order``."""
    if action is ActionType.APPROVE:
        following = workflow.next_step(current_step_order)
        if following is not None:
            return TransitionPlan(action, ApprovalStatus.PENDING, following)
        return TransitionPlan(action, ApprovalStatus.APPROVED)
    if action is ActionType.REJECT:
        return TransitionPlan(action, ApprovalStatus.REJECTED)
    if action is ActionType.SEND_BACK:
        return TransitionPlan(action, ApprovalStatus.RETURNED)
    if action is ActionType.COMMENT:
        return TransitionPlan(action, ApprovalStatus.PENDING)
    raise UnsupportedActionError(
        action.value, tuple(a.value for a in HUMAN_ACTIONS)
    )
