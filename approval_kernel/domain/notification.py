"""
Notification domain types (``approval_kernel.domain.notification``).

Responsibility:
    Notification kinds, recipient targets, and the message templates the
    dispatcher renders.  Rendering is pure string formatting; inserting
    rows is the dispatcher's job.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable
from uuid import UUID

from approval_kernel.domain.workflow import (
    RequestorManagerApprover,
    RoleApprover,
    Step,
    UserApprover,
)


class NotificationType(str, Enum):
    """Persisted ``notifications.type`` values."""

    APPROVAL_REQUIRED = "approval_required"
    APPROVAL_APPROVED = "approval_approved"
    APPROVAL_REJECTED = "approval_rejected"
    APPROVAL_RETURNED = "approval_returned"
    ESCALATION = "escalation"


@dataclass(frozen=True)
class NotificationTarget:
    """Who should receive a notification.

    Roles are expanded to their members by the dispatcher at dispatch
    time.  Blank user ids are dropped.
    """

    user_ids: tuple[str, ...] = ()
    roles: tuple[str, ...] = ()

    @classmethod
    def users(cls, *user_ids: str | None) -> NotificationTarget:
        return cls(user_ids=tuple(u for u in user_ids if u and u.strip()))

    def merge(self, other: NotificationTarget) -> NotificationTarget:
        return NotificationTarget(
            user_ids=self.user_ids + other.user_ids,
            roles=self.roles + other.roles,
        )

    @property
    def is_empty(self) -> bool:
        return not self.user_ids and not self.roles


@dataclass(frozen=True)
class NotificationTemplate:
    """Title and message format strings for one notification kind.

    Format fields available: ``label``, ``number``, ``step_name``,
    ``hours``, ``comment``.
    """

    name: str
    notification_type: NotificationType
    title: str
    message: str

    def render(self, **context: Any) -> tuple[str, str]:
        values = {
            "label": "Document",
            "number": "N/A",
            "step_name": "",
            "hours": "",
            "comment": "",
        }
        values.update({k: v for k, v in context.items() if v is not None})
        return self.title.format(**values), self.message.format(**values)


TEMPLATES: dict[str, NotificationTemplate] = {
    t.name: t
    for t in (
        NotificationTemplate(
            name="approval_required",
            notification_type=NotificationType.APPROVAL_REQUIRED,
            title="Approval Required",
            message="{label} {number} is awaiting your approval at step '{step_name}'",
        ),
        NotificationTemplate(
            name="approval_approved",
            notification_type=NotificationType.APPROVAL_APPROVED,
            title="Request Approved",
            message="{label} {number} has been approved",
        ),
        NotificationTemplate(
            name="approval_rejected",
            notification_type=NotificationType.APPROVAL_REJECTED,
            title="Request Rejected",
            message="{label} {number} has been rejected: {comment}",
        ),
        NotificationTemplate(
            name="approval_returned",
            notification_type=NotificationType.APPROVAL_RETURNED,
            title="Returned for Revision",
            message="{label} {number} was sent back for revision: {comment}",
        ),
        NotificationTemplate(
            name="escalation_submitter",
            notification_type=NotificationType.ESCALATION,
            title="Approval Delayed",
            message="{label} {number} has been pending for over {hours} hours",
        ),
        NotificationTemplate(
            name="escalation_approver",
            notification_type=NotificationType.ESCALATION,
            title="Overdue Approval Reminder",
            message="{label} {number} requires your urgent attention (SLA exceeded)",
        ),
    )
}

OUTCOME_TEMPLATES: dict[str, str] = {
    "approved": "approval_approved",
    "rejected": "approval_rejected",
    "returned": "approval_returned",
}


@dataclass(frozen=True)
class Notification:
    """One inbox entry for one recipient."""

    notification_id: UUID
    user_id: str
    notification_type: str
    title: str
    message: str
    entity_type: str | None = None
    entity_id: str | None = None
    request_id: UUID | None = None
    read: bool = False
    created_at: datetime | None = None


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of one fan-out."""

    template: str
    recipients: tuple[str, ...] = field(default_factory=tuple)
    failed: bool = False

    @property
    def count(self) -> int:
        return 0 if self.failed else len(self.recipients)


def dedupe_recipients(user_ids: Iterable[str | None]) -> tuple[str, ...]:
    """Drop blanks and duplicates, keeping first-seen order."""
    seen: dict[str, None] = {}
    for user_id in user_ids:
        if user_id and user_id.strip() and user_id not in seen:
            seen[user_id] = None
    return tuple(seen)


def target_for_step(step: Step, requestor_manager_id: str | None = None) -> NotificationTarget:
    """Everyone who may act on ``step``, as a dispatch target."""
    user_ids: list[str] = []
    roles: list[str] = []
    for approver in step.approvers:
        match approver:
            case UserApprover(user_id=user_id):
                user_ids.append(user_id)
            case RoleApprover(role=role):
                roles.append(role)
            case RequestorManagerApprover():
                if requestor_manager_id:
                    user_ids.append(requestor_manager_id)
    return NotificationTarget(user_ids=tuple(user_ids), roles=tuple(roles))
