"""Read-only query selectors for the approval kernel."""

from approval_kernel.selectors.directory_selector import SqlUserDirectory
from approval_kernel.selectors.notification_selector import NotificationSelector

__all__ = ["NotificationSelector", "SqlUserDirectory"]
