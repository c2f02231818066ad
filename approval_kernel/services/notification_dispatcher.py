"""
NotificationDispatcher -- fan-out of in-app notifications.

Responsibility:
    Given a target (explicit user ids and/or role names) and a template,
    inserts one ``notifications`` row per distinct recipient.  Roles are
    expanded through the injected ``UserDirectory`` at dispatch time.
    Also owns the inbox mutations (mark read / mark all read).

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - One row per recipient per dispatch (recipients de-duplicated, blank
      ids dropped).
    - Fire-and-forget: the insert runs in a SAVEPOINT; a failure rolls back
      only the notification rows, is logged as NotifyFailureError, and is
      never raised to the caller.

Failure modes:
    - None surfaced.  Failures are reported through the returned
      ``DispatchResult.failed`` flag and the ``notification_dispatch_failed``
      log event.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import update

from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.directory import UserDirectory
from approval_kernel.domain.notification import (
    TEMPLATES,
    DispatchResult,
    NotificationTarget,
    dedupe_recipients,
)
from approval_kernel.exceptions import NotifyFailureError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.notification import NotificationModel
from approval_kernel.services.base import BaseService

logger = get_logger("services.notification_dispatcher")


class NotificationDispatcher(BaseService):
    """Inserts notification rows for resolved recipients."""

    def __init__(self, session, directory: UserDirectory, clock: Clock | None = None):
        super().__init__(session)
        self._directory = directory
        self._clock = clock or SystemClock()

    def resolve_recipients(self, target: NotificationTarget) -> tuple[str, ...]:
        """Explicit users first, then members of each role, de-duplicated."""
        user_ids: list[str | None] = list(target.user_ids)
        for role in target.roles:
            user_ids.extend(self._directory.users_with_role(role))
        return dedupe_recipients(user_ids)

    def dispatch(
        self,
        template_name: str,
        target: NotificationTarget,
        *,
        entity_type: str | None = None,
        entity_id: str | None = None,
        request_id: UUID | None = None,
        **context,
    ) -> DispatchResult:
        """Render ``template_name`` and insert one row per recipient."""
        template = TEMPLATES[template_name]
        recipients: tuple[str, ...] = ()
        try:
            recipients = self.resolve_recipients(target)
            if not recipients:
                logger.debug(
                    "notification_no_recipients",
                    extra={"template": template_name, "roles": list(target.roles)},
                )
                return DispatchResult(template_name)

            title, message = template.render(**context)
            now = self._clock.now()
            with self.session.begin_nested():
                self.session.add_all(
                    NotificationModel(
                        user_id=user_id,
                        type=template.notification_type.value,
                        title=title,
                        message=message,
                        entity_type=entity_type,
                        entity_id=entity_id,
                        request_id=request_id,
                        read=False,
                        created_at=now,
                    )
                    for user_id in recipients
                )
                self.session.flush()
        except Exception as exc:
            failure = NotifyFailureError(
                template.notification_type.value, len(recipients), str(exc)
            )
            failure.__cause__ = exc
            logger.error(
                "notification_dispatch_failed",
                extra={"template": template_name},
                exc_info=failure,
            )
            return DispatchResult(template_name, recipients, failed=True)

        logger.info(
            "notification_dispatched",
            extra={
                "template": template_name,
                "notification_type": template.notification_type.value,
                "recipient_count": len(recipients),
            },
        )
        return DispatchResult(template_name, recipients)

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------

    def mark_read(self, notification_id: UUID, user_id: str | None = None) -> bool:
        """Mark one notification read.  Scoped to ``user_id`` when given."""
        stmt = (
            update(NotificationModel)
            .where(NotificationModel.id == notification_id)
            .values(read=True)
        )
        if user_id is not None:
            stmt = stmt.where(NotificationModel.user_id == user_id)
        result = self.session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount > 0

    def mark_all_read(self, user_id: str) -> int:
        result = self.session.execute(
            update(NotificationModel)
            .where(
                NotificationModel.user_id == user_id,
                NotificationModel.read.is_(False),
            )
            .values(read=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
