"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from approval_kernel.domain.approval import (
    ActionType,
    ApprovalActionRecord,
    ApprovalRequest,
    ApprovalStatus,
    Identity,
    TransitionPlan,
    plan_transition,
)
from approval_kernel.domain.authorization import (
    approver_matches,
    describe_approvers,
    may_act,
)
from approval_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from approval_kernel.domain.directory import StaticUserDirectory, UserDirectory
from approval_kernel.domain.document_status import (
    DocumentStatusMapping,
    StatusUpdate,
    SyncOutcome,
    TimestampKind,
)
from approval_kernel.domain.notification import (
    TEMPLATES,
    Notification,
    NotificationTarget,
    NotificationType,
)
from approval_kernel.domain.workflow import (
    Approver,
    ApproverType,
    EscalationAction,
    RequestorManagerApprover,
    RoleApprover,
    Step,
    UserApprover,
    WorkflowDefinition,
    build_workflow,
)

__all__ = [
    "ActionType",
    "ApprovalActionRecord",
    "ApprovalRequest",
    "ApprovalStatus",
    "Approver",
    "ApproverType",
    "Clock",
    "DeterministicClock",
    "DocumentStatusMapping",
    "EscalationAction",
    "Identity",
    "Notification",
    "NotificationTarget",
    "NotificationType",
    "RequestorManagerApprover",
    "RoleApprover",
    "StaticUserDirectory",
    "StatusUpdate",
    "Step",
    "SyncOutcome",
    "SystemClock",
    "TEMPLATES",
    "TimestampKind",
    "TransitionPlan",
    "UserApprover",
    "UserDirectory",
    "WorkflowDefinition",
    "approver_matches",
    "build_workflow",
    "describe_approvers",
    "may_act",
    "plan_transition",
]
