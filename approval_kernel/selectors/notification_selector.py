"""
NotificationSelector -- read side of the notification inbox.
"""

from uuid import UUID

from sqlalchemy import func, select

from approval_kernel.domain.notification import Notification
from approval_kernel.models.notification import NotificationModel
from approval_kernel.selectors.base import BaseSelector


class NotificationSelector(BaseSelector):
    """Inbox queries for a single user or request."""

    def list_for_user(
        self,
        user_id: str,
        *,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[Notification]:
        """Newest first."""
        stmt = select(NotificationModel).where(NotificationModel.user_id == user_id)
        if unread_only:
            stmt = stmt.where(NotificationModel.read.is_(False))
        stmt = stmt.order_by(NotificationModel.created_at.desc()).limit(limit)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def unread_count(self, user_id: str) -> int:
        return self.session.execute(
            select(func.count(NotificationModel.id)).where(
                NotificationModel.user_id == user_id,
                NotificationModel.read.is_(False),
            )
        ).scalar() or 0

    def for_request(self, request_id: UUID) -> list[Notification]:
        stmt = (
            select(NotificationModel)
            .where(NotificationModel.request_id == request_id)
            .order_by(NotificationModel.created_at, NotificationModel.user_id)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]
