"""Services for the approval kernel (write side)."""

from approval_kernel.services.document_sync import (
    DocumentStatusSynchronizer,
    DocumentStatusWriter,
    SqlDocumentStatusWriter,
)
from approval_kernel.services.notification_dispatcher import NotificationDispatcher
from approval_kernel.services.request_tracker import RequestTracker
from approval_kernel.services.workflow_store import WorkflowStore

__all__ = [
    "DocumentStatusSynchronizer",
    "DocumentStatusWriter",
    "NotificationDispatcher",
    "RequestTracker",
    "SqlDocumentStatusWriter",
    "WorkflowStore",
]
