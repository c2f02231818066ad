"""ORM models for the approval kernel."""

from approval_kernel.models.approval import ApprovalActionModel, ApprovalRequestModel
from approval_kernel.models.directory import UserProfileModel, UserRoleModel
from approval_kernel.models.notification import NotificationModel
from approval_kernel.models.workflow import (
    ApprovalStepModel,
    ApprovalWorkflowModel,
    StepApproverModel,
)

__all__ = [
    "ApprovalWorkflowModel",
    "ApprovalStepModel",
    "StepApproverModel",
    "ApprovalRequestModel",
    "ApprovalActionModel",
    "NotificationModel",
    "UserRoleModel",
    "UserProfileModel",
]
