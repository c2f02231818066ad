"""
approval_services.approval_engine -- ApprovalEngine facade.

Responsibility:
    The external interface of the approval engine.  Wires the kernel
    services for one unit of work, owns the transaction boundary of every
    operation, and exposes the escalation sweep.

Architecture position:
    Services -- the top layer.  Imports from approval_kernel,
    approval_batch and approval_config; nothing below imports from here.

Invariants enforced:
    - One transaction per public write operation: committed on success,
      rolled back on any exception (``session_scope``).
    - Kernel services are constructed once per unit of work and share the
      session, clock and directory of that unit of work.
    - Read operations never commit.

Failure modes:
    - Errors raised by the kernel propagate unchanged (NotFoundError,
      ForbiddenError, InvalidTransitionError, ApprovalValidationError).

Usage:
    from approval_kernel.db.engine import init_engine_from_url, get_session_factory
    from approval_services import ApprovalEngine

    init_engine_from_url("sqlite:///approvals.db")
    engine = ApprovalEngine(get_session_factory())
    request = engine.submit("purchase_order", "42", "PO-42", None, "U7")
    engine.act(request.request_id, "U1", {"buyer"}, "approve")
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from approval_batch.services.escalation_scheduler import EscalationScheduler, SweepResult
from approval_config import ApprovalEngineConfig, get_active_config
from approval_config.bridges import build_document_mappings, build_workflow_specs
from approval_kernel.db.engine import session_scope
from approval_kernel.domain.approval import (
    ApprovalActionRecord,
    ApprovalRequest,
    Identity,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.directory import UserDirectory
from approval_kernel.domain.notification import Notification
from approval_kernel.domain.workflow import WorkflowDefinition, WorkflowSpec
from approval_kernel.logging_config import get_logger
from approval_kernel.selectors.directory_selector import SqlUserDirectory
from approval_kernel.selectors.notification_selector import NotificationSelector
from approval_kernel.services.document_sync import (
    DocumentStatusSynchronizer,
    DocumentStatusWriter,
)
from approval_kernel.services.notification_dispatcher import NotificationDispatcher
from approval_kernel.services.request_tracker import RequestTracker
from approval_kernel.services.workflow_store import WorkflowStore

logger = get_logger("services.approval_engine")


@dataclass
class UnitOfWork:
    """Kernel services bound to one session."""

    session: Session
    workflows: WorkflowStore
    dispatcher: NotificationDispatcher
    synchronizer: DocumentStatusSynchronizer
    tracker: RequestTracker


class ApprovalEngine:
    """Facade over the approval kernel.

    Contract:
        Every method opens its own session from ``session_factory``.
        ``directory`` of None resolves roles and managers from the
        ``user_roles`` / ``user_profiles`` tables of that session.
        ``config`` of None loads the packaged default configuration.

    Non-goals:
        - Does NOT authenticate callers; ``user_id`` and ``roles`` are
          trusted as supplied.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        directory: UserDirectory | None = None,
        config: ApprovalEngineConfig | None = None,
        clock: Clock | None = None,
        document_writer_factory: Callable[[Session], DocumentStatusWriter] | None = None,
    ):
        self._session_factory = session_factory
        self._directory = directory
        self._config = config if config is not None else get_active_config()
        self._clock = clock or SystemClock()
        self._writer_factory = document_writer_factory
        self._mappings = build_document_mappings(self._config)

    @property
    def config(self) -> ApprovalEngineConfig:
        return self._config

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def build_unit_of_work(self, session: Session) -> UnitOfWork:
        """Construct every kernel service for ``session``, in dependency order."""
        directory = self._directory if self._directory is not None else SqlUserDirectory(session)
        workflows = WorkflowStore(session, self._clock)
        dispatcher = NotificationDispatcher(session, directory, self._clock)
        synchronizer = DocumentStatusSynchronizer(
            session,
            self._mappings,
            writer=self._writer_factory(session) if self._writer_factory else None,
            clock=self._clock,
        )
        tracker = RequestTracker(
            session,
            workflows=workflows,
            directory=directory,
            dispatcher=dispatcher,
            synchronizer=synchronizer,
            clock=self._clock,
            entity_labels=self._config.entity_labels,
            system_actor_label=self._config.engine.system_actor_label,
        )
        return UnitOfWork(session, workflows, dispatcher, synchronizer, tracker)

    def tracker_for(self, session: Session) -> RequestTracker:
        return self.build_unit_of_work(session).tracker

    @contextmanager
    def _write(self) -> Iterator[UnitOfWork]:
        with session_scope(self._session_factory) as session:
            yield self.build_unit_of_work(session)

    @contextmanager
    def _read(self) -> Iterator[UnitOfWork]:
        session = self._session_factory()
        try:
            yield self.build_unit_of_work(session)
        finally:
            session.rollback()
            session.close()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def submit(
        self,
        entity_type: str,
        entity_id: str,
        entity_number: str | None,
        workflow_id: UUID | None,
        submitted_by: str | None,
    ) -> ApprovalRequest:
        with self._write() as uow:
            return uow.tracker.submit(
                entity_type, entity_id, entity_number, submitted_by, workflow_id,
            )

    def act(
        self,
        request_id: UUID,
        user_id: str,
        roles: Iterable[str],
        action: str,
        comment: str | None = None,
        expected_step_order: int | None = None,
    ) -> ApprovalRequest:
        with self._write() as uow:
            return uow.tracker.act(
                request_id,
                Identity.of(user_id, roles),
                action,
                comment,
                expected_step_order,
            )

    def get_request(self, request_id: UUID) -> ApprovalRequest:
        with self._read() as uow:
            return uow.tracker.get_request(request_id)

    def get_active_request(self, entity_type: str, entity_id: str) -> ApprovalRequest | None:
        with self._read() as uow:
            return uow.tracker.get_active_request(entity_type, entity_id)

    def get_history(self, request_id: UUID) -> list[ApprovalActionRecord]:
        with self._read() as uow:
            return uow.tracker.get_actions(request_id)

    def can_act(self, request_id: UUID, user_id: str, roles: Iterable[str]) -> bool:
        with self._read() as uow:
            return uow.tracker.can_act(request_id, Identity.of(user_id, roles))

    def describe_current_approvers(self, request_id: UUID) -> str:
        with self._read() as uow:
            return uow.tracker.describe_current_approvers(request_id)

    def my_pending_approvals(self, user_id: str, roles: Iterable[str]) -> list[ApprovalRequest]:
        with self._read() as uow:
            return uow.tracker.pending_for_identity(Identity.of(user_id, roles))

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    def register_workflow(self, spec: WorkflowSpec) -> WorkflowDefinition:
        with self._write() as uow:
            return uow.workflows.register(spec)

    def has_active_workflow(self, entity_type: str) -> bool:
        with self._read() as uow:
            return uow.workflows.has_active_workflow(entity_type)

    def list_workflows(self, entity_type: str | None = None) -> list[WorkflowDefinition]:
        with self._read() as uow:
            return uow.workflows.list_workflows(entity_type)

    def seed_workflows(self) -> list[WorkflowDefinition]:
        """Register the configured workflows for entity types that have none.

        Safe to run repeatedly: entity types with an active workflow are
        left alone.
        """
        registered = []
        with self._write() as uow:
            for spec in build_workflow_specs(self._config):
                if uow.workflows.has_active_workflow(spec.entity_type):
                    logger.info(
                        "workflow_seed_skipped",
                        extra={"entity_type": spec.entity_type, "workflow_name": spec.name},
                    )
                    continue
                registered.append(uow.workflows.register(spec))
        return registered

    # ------------------------------------------------------------------
    # Escalation
    # ------------------------------------------------------------------

    def scheduler(self, sweep_interval_seconds: int | None = None) -> EscalationScheduler:
        return EscalationScheduler(
            self._session_factory,
            self.tracker_for,
            clock=self._clock,
            sweep_interval_seconds=(
                sweep_interval_seconds or self._config.engine.sweep_interval_seconds
            ),
        )

    def run_escalation_sweep(self, now: datetime | None = None) -> SweepResult:
        return self.scheduler().run_sweep(now)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def notifications_for(
        self,
        user_id: str,
        *,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[Notification]:
        with self._read() as uow:
            return NotificationSelector(uow.session).list_for_user(
                user_id, unread_only=unread_only, limit=limit,
            )

    def unread_count(self, user_id: str) -> int:
        with self._read() as uow:
            return NotificationSelector(uow.session).unread_count(user_id)

    def mark_notification_read(self, notification_id: UUID, user_id: str | None = None) -> bool:
        with self._write() as uow:
            return uow.dispatcher.mark_read(notification_id, user_id)

    def mark_all_notifications_read(self, user_id: str) -> int:
        with self._write() as uow:
            return uow.dispatcher.mark_all_read(user_id)
