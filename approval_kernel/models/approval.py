"""
Module: approval_kernel.models.approval
Responsibility: ORM persistence for approval requests and their action log.

Architecture position: Kernel > Models.  May import from db/ and exceptions.

Invariants enforced:
    - One active request per entity: partial UNIQUE index on
      (entity_type, entity_id) WHERE status = 'pending' (PostgreSQL and
      SQLite both support partial indexes).
    - Status values limited by a check constraint.
    - Resolved requests are frozen: once status leaves 'pending' only
      completed_at, escalated_at and escalation_count may change through
      the ORM.
    - Actions are append-only: no UPDATE, no DELETE.
    - UNIQUE(request_id, sequence) gives each request a gapless, totally
      ordered history.

Failure modes:
    - IntegrityError on a second pending request for the same entity.
    - ImmutabilityViolationError on action UPDATE/DELETE, or on editing a
      resolved request.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_kernel.db.base import Base, UUIDString
from approval_kernel.db.types import UTCDateTime
from approval_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from approval_kernel.domain.approval import ApprovalActionRecord, ApprovalRequest

_PENDING_ONLY = text("status = 'pending'")


class ApprovalRequestModel(Base):
    """Persistent approval request.

    Contract:
        Transitions are applied with compare-and-set UPDATE statements by
        the request tracker; the ORM is used for inserts and reads.

    Guarantees:
        - At most one pending row per (entity_type, entity_id).
        - escalation_count is never negative.
    """

    __tablename__ = "approval_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'returned')",
            name="ck_approval_requests_valid_status",
        ),
        CheckConstraint(
            "escalation_count >= 0",
            name="ck_approval_requests_escalation_count",
        ),
        Index(
            "ix_approval_requests_pending_unique",
            "entity_type", "entity_id",
            unique=True,
            sqlite_where=_PENDING_ONLY,
            postgresql_where=_PENDING_ONLY,
        ),
        Index(
            "ix_approval_requests_entity_status",
            "entity_type", "entity_id", "status",
        ),
        Index("ix_approval_requests_status", "status", "submitted_at"),
    )

    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    workflow_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("approval_workflows.id"), nullable=False,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    current_step_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("approval_steps.id"), nullable=False,
    )
    current_step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    submitted_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    escalated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    escalation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    actions: Mapped[list["ApprovalActionModel"]] = relationship(
        "ApprovalActionModel",
        order_by="ApprovalActionModel.sequence",
        lazy="select",
        viewonly=True,
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalRequest {self.id} {self.entity_type}:{self.entity_id} "
            f"status={self.status} step={self.current_step_order}>"
        )

    def to_dto(self) -> ApprovalRequest:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import (
            ApprovalRequest as ApprovalRequestDTO,
            ApprovalStatus,
        )

        return ApprovalRequestDTO(
            request_id=self.id,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            entity_number=self.entity_number,
            workflow_id=self.workflow_id,
            status=ApprovalStatus(self.status),
            current_step_id=self.current_step_id,
            current_step_order=self.current_step_order,
            submitted_by=self.submitted_by,
            submitted_at=self.submitted_at,
            completed_at=self.completed_at,
            escalated_at=self.escalated_at,
            escalation_count=self.escalation_count,
        )


class ApprovalActionModel(Base):
    """Persistent approval action. Append-only.

    Contract:
        Actions are immutable once created -- no UPDATE, no DELETE.
    """

    __tablename__ = "approval_actions"

    __table_args__ = (
        UniqueConstraint("request_id", "sequence", name="uq_approval_actions_sequence"),
        CheckConstraint(
            "action IN ('submit', 'approve', 'reject', 'send_back', "
            "'comment', 'escalate', 'delegate')",
            name="ck_approval_actions_valid_action",
        ),
        Index("ix_approval_actions_request_id", "request_id"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("approval_requests.id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    step_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("approval_steps.id"), nullable=True,
    )
    user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ApprovalAction {self.id} request={self.request_id} "
            f"#{self.sequence} {self.action}>"
        )

    def to_dto(self) -> ApprovalActionRecord:
        from approval_kernel.domain.approval import ActionType, ApprovalActionRecord

        return ApprovalActionRecord(
            action_id=self.id,
            request_id=self.request_id,
            step_id=self.step_id,
            user_id=self.user_id,
            action=ActionType(self.action),
            comment=self.comment,
            action_date=self.action_date,
            sequence=self.sequence,
        )


# =============================================================================
# ORM-Level Immutability
# =============================================================================

_MUTABLE_AFTER_RESOLUTION = frozenset({"completed_at", "escalated_at", "escalation_count"})


@event.listens_for(ApprovalRequestModel, "before_update")
def prevent_resolved_request_update(mapper, connection, target):
    """Resolved requests accept escalation bookkeeping only."""
    state = inspect(target)
    status_history = state.attrs.status.history
    previous = status_history.deleted[0] if status_history.deleted else target.status
    if previous == "pending":
        return
    changed = {
        attr.key
        for attr in state.mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    }
    forbidden = changed - _MUTABLE_AFTER_RESOLUTION
    if forbidden:
        raise ImmutabilityViolationError(
            entity_type="ApprovalRequest",
            entity_id=str(target.id),
            reason=(
                f"Request is {previous} -- cannot modify "
                f"{', '.join(sorted(forbidden))}"
            ),
        )


@event.listens_for(ApprovalActionModel, "before_update")
def prevent_action_update(mapper, connection, target):
    """Prevent updates to approval action records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalAction",
        entity_id=str(target.id),
        reason="Approval actions are immutable -- cannot modify",
    )


@event.listens_for(ApprovalActionModel, "before_delete")
def prevent_action_delete(mapper, connection, target):
    """Prevent deletion of approval action records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalAction",
        entity_id=str(target.id),
        reason="Approval actions are immutable -- cannot delete",
    )
