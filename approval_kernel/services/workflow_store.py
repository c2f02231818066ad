"""
WorkflowStore -- Workflow Definition Store.

Responsibility:
    Registers workflow definitions and resolves them at run time: by id
    (the workflow a request is pinned to) or as the active definition for
    an entity type (highest ``version`` with ``is_active``).

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Registered definitions have contiguous steps 1..N and only known
      approver types (validated before any row is written).
    - Definitions are never edited in place.  Registering again for the
      same entity type creates the next version.

Failure modes:
    - WorkflowDefinitionError on an empty or non-contiguous definition.
    - WorkflowNotFoundError on an unknown id, or no active definition.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.workflow import (
    WorkflowDefinition,
    WorkflowSpec,
    validate_step_orders,
)
from approval_kernel.exceptions import WorkflowDefinitionError, WorkflowNotFoundError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.workflow import (
    ApprovalStepModel,
    ApprovalWorkflowModel,
    StepApproverModel,
)
from approval_kernel.services.base import BaseService

logger = get_logger("services.workflow_store")


class WorkflowStore(BaseService):
    """Read-mostly access to workflow definitions.

    Definitions are immutable, so resolved definitions are memoized for
    the lifetime of the store (one unit of work).
    """

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._by_id: dict[UUID, WorkflowDefinition] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, spec: WorkflowSpec) -> WorkflowDefinition:
        """Persist ``spec`` as a new workflow version and return it."""
        ref = f"{spec.entity_type}/{spec.name}"
        validate_step_orders(ref, (s.step_order for s in spec.steps))
        for step in spec.steps:
            if not step.step_name or not step.step_name.strip():
                raise WorkflowDefinitionError(
                    ref, f"step {step.step_order} has no name"
                )

        version = spec.version
        if version is None:
            current = self.session.execute(
                select(func.max(ApprovalWorkflowModel.version)).where(
                    ApprovalWorkflowModel.entity_type == spec.entity_type
                )
            ).scalar()
            version = (current or 0) + 1

        workflow = ApprovalWorkflowModel(
            entity_type=spec.entity_type,
            name=spec.name,
            description=spec.description,
            is_active=spec.is_active,
            version=version,
            created_at=self._clock.now(),
        )
        for step in sorted(spec.steps, key=lambda s: s.step_order):
            step_model = ApprovalStepModel(
                step_order=step.step_order,
                step_name=step.step_name,
                timeout_hours=step.timeout_hours,
                escalation_action=step.escalation_action.value,
            )
            step_model.approvers = [
                StepApproverModel(
                    position=position,
                    approver_type=approver.approver_type.value,
                    approver_value=approver.approver_value,
                )
                for position, approver in enumerate(step.approvers)
            ]
            workflow.steps.append(step_model)

        self.session.add(workflow)
        self.session.flush()

        definition = workflow.to_dto()
        self._by_id[definition.workflow_id] = definition

        logger.info(
            "workflow_registered",
            extra={
                "workflow_id": str(definition.workflow_id),
                "entity_type": definition.entity_type,
                "version": definition.version,
                "step_count": len(definition.steps),
                "is_active": definition.is_active,
            },
        )
        return definition

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def get(self, workflow_id: UUID) -> WorkflowDefinition:
        """Definition by id (active or not)."""
        cached = self._by_id.get(workflow_id)
        if cached is not None:
            return cached
        model = self.session.get(ApprovalWorkflowModel, workflow_id)
        if model is None:
            raise WorkflowNotFoundError(str(workflow_id))
        definition = model.to_dto()
        self._by_id[workflow_id] = definition
        return definition

    def find_active(self, entity_type: str) -> WorkflowDefinition | None:
        model = self.session.execute(
            select(ApprovalWorkflowModel)
            .where(
                ApprovalWorkflowModel.entity_type == entity_type,
                ApprovalWorkflowModel.is_active.is_(True),
            )
            .order_by(ApprovalWorkflowModel.version.desc())
            .limit(1)
        ).scalar_one_or_none()
        if model is None:
            return None
        definition = model.to_dto()
        self._by_id[definition.workflow_id] = definition
        return definition

    def get_active(self, entity_type: str) -> WorkflowDefinition:
        """Highest active version for ``entity_type``."""
        definition = self.find_active(entity_type)
        if definition is None:
            raise WorkflowNotFoundError(f"active workflow for {entity_type}")
        return definition

    def has_active_workflow(self, entity_type: str) -> bool:
        count = self.session.execute(
            select(func.count(ApprovalWorkflowModel.id)).where(
                ApprovalWorkflowModel.entity_type == entity_type,
                ApprovalWorkflowModel.is_active.is_(True),
            )
        ).scalar()
        return bool(count)

    def list_workflows(self, entity_type: str | None = None) -> list[WorkflowDefinition]:
        stmt = select(ApprovalWorkflowModel).order_by(
            ApprovalWorkflowModel.entity_type, ApprovalWorkflowModel.version
        )
        if entity_type is not None:
            stmt = stmt.where(ApprovalWorkflowModel.entity_type == entity_type)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]
