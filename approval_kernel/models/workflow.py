"""
Module: approval_kernel.models.workflow
Responsibility: ORM persistence for workflow definitions, their steps, and
    each step's approver descriptors.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - UNIQUE(workflow_id, step_order): a step number appears once per workflow.
    - UNIQUE(entity_type, version): versions are distinct per entity type.
    - Definitions are never edited in place; a change is a new version.

Failure modes:
    - WorkflowDefinitionError from to_dto() when persisted rows break the
      contiguous-steps rule or carry an unknown approver type.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_kernel.db.base import Base, UUIDString
from approval_kernel.db.types import UTCDateTime

if TYPE_CHECKING:
    from approval_kernel.domain.workflow import Step, WorkflowDefinition


class ApprovalWorkflowModel(Base):
    """Persistent workflow definition header."""

    __tablename__ = "approval_workflows"

    __table_args__ = (
        UniqueConstraint(
            "entity_type", "version", name="uq_approval_workflows_entity_version",
        ),
        Index("ix_approval_workflows_entity_active", "entity_type", "is_active"),
    )

    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    steps: Mapped[list["ApprovalStepModel"]] = relationship(
        "ApprovalStepModel",
        back_populates="workflow",
        order_by="ApprovalStepModel.step_order",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalWorkflow {self.id} {self.entity_type} "
            f"v{self.version} active={self.is_active}>"
        )

    def to_dto(self) -> WorkflowDefinition:
        """Convert ORM model to a validated, frozen workflow definition."""
        from approval_kernel.domain.workflow import build_workflow

        return build_workflow(
            workflow_id=self.id,
            entity_type=self.entity_type,
            name=self.name,
            steps=[s.to_dto(workflow_ref=str(self.id)) for s in self.steps],
            description=self.description,
            is_active=self.is_active,
            version=self.version,
        )


class ApprovalStepModel(Base):
    """One ordered step of a workflow."""

    __tablename__ = "approval_steps"

    __table_args__ = (
        UniqueConstraint(
            "workflow_id", "step_order", name="uq_approval_steps_workflow_order",
        ),
        CheckConstraint("step_order >= 1", name="ck_approval_steps_order_positive"),
        CheckConstraint(
            "escalation_action IS NULL OR escalation_action IN "
            "('notify', 'auto_approve', 'auto_reject')",
            name="ck_approval_steps_escalation_action",
        ),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("approval_workflows.id"), nullable=False,
    )
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    step_name: Mapped[str] = mapped_column(String(200), nullable=False)
    timeout_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    escalation_action: Mapped[str | None] = mapped_column(String(20), nullable=True)

    workflow: Mapped[ApprovalWorkflowModel] = relationship(
        "ApprovalWorkflowModel", back_populates="steps",
    )
    approvers: Mapped[list["StepApproverModel"]] = relationship(
        "StepApproverModel",
        back_populates="step",
        order_by="StepApproverModel.position",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<ApprovalStep {self.id} #{self.step_order} {self.step_name}>"

    def to_dto(self, workflow_ref: str = "<unsaved>") -> Step:
        from approval_kernel.domain.workflow import (
            EscalationAction,
            Step,
            approver_from_row,
        )

        return Step(
            step_id=self.id,
            step_order=self.step_order,
            step_name=self.step_name,
            approvers=tuple(
                approver_from_row(
                    a.approver_type, a.approver_value, workflow_ref=workflow_ref,
                )
                for a in self.approvers
            ),
            timeout_hours=self.timeout_hours,
            escalation_action=EscalationAction(
                self.escalation_action or EscalationAction.NOTIFY.value
            ),
        )


class StepApproverModel(Base):
    """Persisted (approver_type, approver_value) descriptor."""

    __tablename__ = "step_approvers"

    __table_args__ = (
        Index("ix_step_approvers_step_id", "step_id"),
        Index("ix_step_approvers_type_value", "approver_type", "approver_value"),
    )

    step_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("approval_steps.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    approver_type: Mapped[str] = mapped_column(String(50), nullable=False)
    approver_value: Mapped[str | None] = mapped_column(String(200), nullable=True)

    step: Mapped[ApprovalStepModel] = relationship(
        "ApprovalStepModel", back_populates="approvers",
    )

    def __repr__(self) -> str:
        return f"<StepApprover {self.approver_type}={self.approver_value}>"
