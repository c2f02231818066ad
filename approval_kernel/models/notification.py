"""
Module: approval_kernel.models.notification
Responsibility: ORM persistence for in-app notifications.

Architecture position: Kernel > Models.  May import from db/ only.

Notifications are fire-and-forget: nothing in the approval state machine
reads them back.  Only ``read`` is expected to change after insert.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, UUIDString
from approval_kernel.db.types import UTCDateTime

if TYPE_CHECKING:
    from approval_kernel.domain.notification import Notification


class NotificationModel(Base):
    """One inbox row for one recipient."""

    __tablename__ = "notifications"

    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "read"),
        Index("ix_notifications_request_id", "request_id"),
    )

    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    request_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<Notification {self.id} {self.type} -> {self.user_id}>"

    def to_dto(self) -> Notification:
        from approval_kernel.domain.notification import Notification

        return Notification(
            notification_id=self.id,
            user_id=self.user_id,
            notification_type=self.type,
            title=self.title,
            message=self.message,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            request_id=self.request_id,
            read=self.read,
            created_at=self.created_at,
        )
