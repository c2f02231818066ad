"""
Workflow definition types (``approval_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for approval workflow definitions: an ordered, linear
sequence of steps per entity type, each step carrying an approver set and
an optional SLA with its escalation policy.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* Steps are numbered contiguously ``1..N`` (``build_workflow``).
* A workflow has at least one step.
* Approvers are a closed variant: ``UserApprover``, ``RoleApprover``,
  ``RequestorManagerApprover``.  Unknown persisted approver types are
  rejected when the definition is built, never silently ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Iterable
from uuid import UUID

from approval_kernel.exceptions import WorkflowDefinitionError


class EscalationAction(str, Enum):
    """What the escalation sweep does when a step's SLA elapses."""

    NOTIFY = "notify"
    AUTO_APPROVE = "auto_approve"
    AUTO_REJECT = "auto_reject"


class ApproverType(str, Enum):
    """Persisted discriminator of the approver variant."""

    USER = "user"
    ROLE = "role"
    REQUESTOR_MANAGER = "requestor_manager"


# =========================================================================
# Approver variant
# =========================================================================


@dataclass(frozen=True)
class UserApprover:
    """A specific user may act."""

    user_id: str
    approver_type: ClassVar[ApproverType] = ApproverType.USER

    @property
    def approver_value(self) -> str:
        return self.user_id


@dataclass(frozen=True)
class RoleApprover:
    """Any user currently holding ``role`` may act."""

    role: str
    approver_type: ClassVar[ApproverType] = ApproverType.ROLE

    @property
    def approver_value(self) -> str:
        return self.role


@dataclass(frozen=True)
class RequestorManagerApprover:
    """The submitter's manager may act."""

    approver_type: ClassVar[ApproverType] = ApproverType.REQUESTOR_MANAGER

    @property
    def approver_value(self) -> None:
        return None


Approver = UserApprover | RoleApprover | RequestorManagerApprover


def approver_from_row(
    approver_type: str,
    approver_value: str | None,
    *,
    workflow_ref: str = "<unsaved>",
) -> Approver:
    """Build an approver variant from its persisted (type, value) pair.

    Raises:
        WorkflowDefinitionError: unknown type, or missing value for
            ``user`` / ``role``.
    """
    try:
        kind = ApproverType(approver_type)
    except ValueError:
        raise WorkflowDefinitionError(
            workflow_ref, f"unknown approver_type '{approver_type}'"
        ) from None

    if kind is ApproverType.REQUESTOR_MANAGER:
        return RequestorManagerApprover()

    value = (approver_value or "").strip()
    if not value:
        raise WorkflowDefinitionError(
            workflow_ref, f"approver_type '{kind.value}' requires approver_value"
        )
    if kind is ApproverType.USER:
        return UserApprover(user_id=value)
    return RoleApprover(role=value)


# =========================================================================
# Steps and workflows
# =========================================================================


@dataclass(frozen=True)
class Step:
    """One stage of a workflow.

    ``timeout_hours`` of None (or <= 0) means the step has no SLA.
    """

    step_id: UUID
    step_order: int
    step_name: str
    approvers: tuple[Approver, ...] = ()
    timeout_hours: int | None = None
    escalation_action: EscalationAction = EscalationAction.NOTIFY

    @property
    def has_sla(self) -> bool:
        return self.timeout_hours is not None and self.timeout_hours > 0


@dataclass(frozen=True)
class WorkflowDefinition:
    """Ordered approval steps for one entity type.

    Contract: frozen; ``steps`` sorted by ``step_order`` and contiguous
    from 1 (guaranteed when built via ``build_workflow``).
    """

    workflow_id: UUID
    entity_type: str
    name: str
    steps: tuple[Step, ...]
    description: str | None = None
    is_active: bool = True
    version: int = 1

    @property
    def first_step(self) -> Step:
        return self.steps[0]

    @property
    def last_step(self) -> Step:
        return self.steps[-1]

    def step_by_id(self, step_id: UUID) -> Step | None:
        for step in self.steps:
            if step.step_id == step_id:
                return step
        return None

    def step_by_order(self, step_order: int) -> Step | None:
        if 1 <= step_order <= len(self.steps):
            return self.steps[step_order - 1]
        return None

    def next_step(self, step_order: int) -> Step | None:
        """Step following ``step_order``, or None at the last step."""
        return self.step_by_order(step_order + 1)


def validate_step_orders(workflow_ref: str, orders: Iterable[int]) -> None:
    """Reject empty or non-contiguous step numbering."""
    ordered = sorted(orders)
    if not ordered:
        raise WorkflowDefinitionError(workflow_ref, "workflow has no steps configured")
    expected = list(range(1, len(ordered) + 1))
    if ordered != expected:
        raise WorkflowDefinitionError(
            workflow_ref,
            f"step_order must be contiguous from 1, got {ordered}",
        )


def build_workflow(
    *,
    workflow_id: UUID,
    entity_type: str,
    name: str,
    steps: Iterable[Step],
    description: str | None = None,
    is_active: bool = True,
    version: int = 1,
) -> WorkflowDefinition:
    """Validate and assemble a ``WorkflowDefinition`` with sorted steps."""
    step_list = sorted(steps, key=lambda s: s.step_order)
    validate_step_orders(str(workflow_id), (s.step_order for s in step_list))
    return WorkflowDefinition(
        workflow_id=workflow_id,
        entity_type=entity_type,
        name=name,
        steps=tuple(step_list),
        description=description,
        is_active=is_active,
        version=version,
    )


# =========================================================================
# Registration specs (definitions before they have ids)
# =========================================================================


@dataclass(frozen=True)
class StepSpec:
    """A step as authored in configuration, before persistence."""

    step_order: int
    step_name: str
    approvers: tuple[Approver, ...] = ()
    timeout_hours: int | None = None
    escalation_action: EscalationAction = EscalationAction.NOTIFY


@dataclass(frozen=True)
class WorkflowSpec:
    """A workflow as authored in configuration.

    ``version`` of None means "next version for this entity type".
    """

    entity_type: str
    name: str
    steps: tuple[StepSpec, ...]
    description: str | None = None
    is_active: bool = True
    version: int | None = None
