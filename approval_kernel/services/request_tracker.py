"""
RequestTracker -- the approval request state machine.

Responsibility:
    Owns the life cycle of an approval request: creation on submission,
    recording of actions, advancing or terminating on approve / reject /
    send_back, and the system-originated transitions driven by the
    escalation sweep.  Invokes the document synchronizer and the
    notification dispatcher after a transition has been applied.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/, and the
    sibling side-effect services.  Transition rules are decided by the
    pure ``plan_transition``; authorization by the pure
    ``approval_kernel.domain.authorization`` functions.

Invariants enforced:
    - At most one pending request per (entity_type, entity_id): checked
      before insert and backed by a partial unique index.
    - Preconditions, in order: request exists -> action supported ->
      comment present for reject/send_back -> request pending -> caller's
      expected step still current -> identity authorized on the current
      step.  A failed precondition writes nothing.
    - Every transition is a compare-and-set UPDATE guarded by
      ``status = 'pending' AND current_step_order = :k``.  Zero rows
      affected means a concurrent transition won: StaleApprovalStateError,
      nothing written.  Exactly one of two racing callers succeeds.
    - The action row is inserted in the same transaction as the CAS, so
      a reader never sees one without the other.
    - Side effects (document sync, notifications) run in SAVEPOINTs after
      the CAS and never undo it.

Failure modes:
    - ApprovalRequestNotFoundError, WorkflowNotFoundError, StepNotFoundError.
    - UnsupportedActionError, CommentRequiredError.
    - ApprovalAlreadyResolvedError, StaleApprovalStateError,
      DuplicateApprovalRequestError.
    - UnauthorizedApproverError (carries who may act instead).
"""

from __future__ import annotations

from datetime import datetime
from typing import Mapping
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from approval_kernel.domain.approval import (
    COMMENT_REQUIRED_ACTIONS,
    HUMAN_ACTIONS,
    SUBMIT_COMMENT,
    SYSTEM_TRANSITION_ACTIONS,
    ActionType,
    ApprovalActionRecord,
    ApprovalRequest,
    ApprovalStatus,
    Identity,
    TransitionPlan,
    is_blank,
    parse_action,
    plan_transition,
)
from approval_kernel.domain.authorization import describe_approvers, may_act
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.directory import UserDirectory
from approval_kernel.domain.notification import (
    OUTCOME_TEMPLATES,
    NotificationTarget,
    target_for_step,
)
from approval_kernel.domain.workflow import (
    RequestorManagerApprover,
    Step,
    WorkflowDefinition,
)
from approval_kernel.exceptions import (
    ApprovalAlreadyResolvedError,
    ApprovalRequestNotFoundError,
    CommentRequiredError,
    DuplicateApprovalRequestError,
    StaleApprovalStateError,
    StepNotFoundError,
    UnauthorizedApproverError,
    WorkflowDefinitionError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.models.approval import ApprovalActionModel, ApprovalRequestModel
from approval_kernel.services.base import BaseService
from approval_kernel.services.document_sync import DocumentStatusSynchronizer
from approval_kernel.services.notification_dispatcher import NotificationDispatcher
from approval_kernel.services.workflow_store import WorkflowStore

logger = get_logger("services.request_tracker")


def default_entity_label(entity_type: str) -> str:
    return entity_type.replace("_", " ").title()


class RequestTracker(BaseService):
    """Approval request state machine bound to one session."""

    def __init__(
        self,
        session,
        *,
        workflows: WorkflowStore,
        directory: UserDirectory,
        dispatcher: NotificationDispatcher,
        synchronizer: DocumentStatusSynchronizer,
        clock: Clock | None = None,
        entity_labels: Mapping[str, str] | None = None,
        system_actor_label: str = "system",
    ):
        super().__init__(session)
        self._workflows = workflows
        self._directory = directory
        self._dispatcher = dispatcher
        self._synchronizer = synchronizer
        self._clock = clock or SystemClock()
        self._entity_labels = dict(entity_labels or {})
        self._system_actor_label = system_actor_label

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        entity_type: str,
        entity_id: str,
        entity_number: str | None,
        submitted_by: str | None,
        workflow_id: UUID | None = None,
    ) -> ApprovalRequest:
        """Create a pending request pinned to step 1 of its workflow.

        ``workflow_id`` of None selects the active workflow for
        ``entity_type``.
        """
        if workflow_id is not None:
            workflow = self._workflows.get(workflow_id)
            if workflow.entity_type != entity_type:
                raise WorkflowDefinitionError(
                    str(workflow_id),
                    f"workflow governs {workflow.entity_type}, not {entity_type}",
                )
        else:
            workflow = self._workflows.get_active(entity_type)
        if not workflow.steps:
            raise WorkflowDefinitionError(
                str(workflow.workflow_id), "workflow has no steps configured"
            )

        existing = self._find_pending(entity_type, entity_id)
        if existing is not None:
            raise DuplicateApprovalRequestError(entity_type, entity_id, str(existing.id))

        now = self._clock.now()
        first = workflow.first_step
        model = ApprovalRequestModel(
            entity_type=entity_type,
            entity_id=entity_id,
            entity_number=entity_number,
            workflow_id=workflow.workflow_id,
            status=ApprovalStatus.PENDING.value,
            current_step_id=first.step_id,
            current_step_order=first.step_order,
            submitted_by=submitted_by,
            submitted_at=now,
            escalation_count=0,
        )
        self.session.add(model)
        try:
            self.session.flush()
        except IntegrityError as exc:
            # Lost the race to a concurrent submission for the same entity.
            raise DuplicateApprovalRequestError(
                entity_type, entity_id, "<concurrent submission>"
            ) from exc

        self._append_action(
            model.id, first.step_id, submitted_by, ActionType.SUBMIT, SUBMIT_COMMENT, now,
        )

        with LogContext.bind(
            request_id=str(model.id),
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=submitted_by,
        ):
            logger.info(
                "approval_request_submitted",
                extra={
                    "workflow_id": str(workflow.workflow_id),
                    "workflow_version": workflow.version,
                    "step_count": len(workflow.steps),
                },
            )
            self._notify_step_approvers(model, first)

        return model.to_dto()

    # ------------------------------------------------------------------
    # Human-originated actions
    # ------------------------------------------------------------------

    def act(
        self,
        request_id: UUID,
        identity: Identity,
        action: str | ActionType,
        comment: str | None = None,
        expected_step_order: int | None = None,
    ) -> ApprovalRequest:
        """Apply approve / reject / send_back / comment on behalf of ``identity``.

        ``expected_step_order`` is an optional optimistic-concurrency token:
        the step the caller was looking at when it decided to act.
        """
        model = self._load(request_id)
        parsed = parse_action(action, HUMAN_ACTIONS)
        if parsed in COMMENT_REQUIRED_ACTIONS and is_blank(comment):
            raise CommentRequiredError(parsed.value)
        self._require_current(model, expected_step_order)

        workflow, step = self._current_step(model)
        manager_id = self._requestor_manager(step, model.submitted_by)
        if not may_act(step, identity, requestor_manager_id=manager_id):
            logger.warning(
                "approval_action_forbidden",
                extra={
                    "request_id": str(model.id),
                    "user_id": identity.user_id,
                    "step_order": step.step_order,
                    "action": parsed.value,
                },
            )
            raise UnauthorizedApproverError(
                str(model.id), identity.user_id, step.step_name, describe_approvers(step),
            )

        with LogContext.bind(
            request_id=str(model.id),
            entity_type=model.entity_type,
            entity_id=model.entity_id,
            actor_id=identity.user_id,
        ):
            return self._apply(
                model, workflow, step, parsed,
                actor_id=identity.user_id,
                comment=comment,
                now=self._clock.now(),
            )

    # ------------------------------------------------------------------
    # System-originated actions (escalation sweep)
    # ------------------------------------------------------------------

    def apply_system_transition(
        self,
        request_id: UUID,
        action: str | ActionType,
        comment: str,
        expected_step_order: int,
        now: datetime | None = None,
    ) -> ApprovalRequest:
        """Auto-approve or auto-reject the current step with no user."""
        model = self._load(request_id)
        parsed = parse_action(action, SYSTEM_TRANSITION_ACTIONS)
        self._require_current(model, expected_step_order)
        workflow, step = self._current_step(model)
        with LogContext.bind(
            request_id=str(model.id),
            entity_type=model.entity_type,
            entity_id=model.entity_id,
            actor_id=self._system_actor_label,
        ):
            return self._apply(
                model, workflow, step, parsed,
                actor_id=None,
                comment=comment,
                now=now or self._clock.now(),
                escalate=True,
            )

    def record_escalation(
        self,
        request_id: UUID,
        comment: str,
        expected_step_order: int,
        now: datetime | None = None,
    ) -> ApprovalRequest:
        """Log an ``escalate`` action and send overdue reminders.

        Status and step are unchanged; ``escalation_count`` increments on
        every call.
        """
        model = self._load(request_id)
        self._require_current(model, expected_step_order)
        _, step = self._current_step(model)
        now = now or self._clock.now()

        self._compare_and_set(
            model,
            expected_step_order,
            {
                "escalation_count": ApprovalRequestModel.escalation_count + 1,
                "escalated_at": now,
            },
        )
        self._append_action(model.id, step.step_id, None, ActionType.ESCALATE, comment, now)

        with LogContext.bind(
            request_id=str(model.id),
            entity_type=model.entity_type,
            entity_id=model.entity_id,
            actor_id=self._system_actor_label,
        ):
            logger.info(
                "approval_escalation_recorded",
                extra={
                    "step_order": step.step_order,
                    "escalation_count": model.escalation_count,
                },
            )
            context = self._message_context(model, step)
            self._dispatcher.dispatch(
                "escalation_submitter",
                NotificationTarget.users(model.submitted_by),
                **context,
            )
            self._dispatcher.dispatch(
                "escalation_approver",
                target_for_step(step, self._requestor_manager(step, model.submitted_by)),
                **context,
            )
        return model.to_dto()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_request(self, request_id: UUID) -> ApprovalRequest:
        return self._load(request_id).to_dto()

    def get_active_request(self, entity_type: str, entity_id: str) -> ApprovalRequest | None:
        model = self._find_pending(entity_type, entity_id)
        return model.to_dto() if model is not None else None

    def get_actions(self, request_id: UUID) -> list[ApprovalActionRecord]:
        """History of ``request_id`` in the order the actions happened."""
        self._load(request_id)
        rows = self.session.execute(
            select(ApprovalActionModel)
            .where(ApprovalActionModel.request_id == request_id)
            .order_by(ApprovalActionModel.sequence)
        ).scalars()
        return [r.to_dto() for r in rows]

    def can_act(self, request_id: UUID, identity: Identity) -> bool:
        """Whether ``identity`` should be offered action controls.

        False for unknown or resolved requests.
        """
        model = self.session.get(ApprovalRequestModel, request_id)
        if model is None or model.status != ApprovalStatus.PENDING.value:
            return False
        _, step = self._current_step(model)
        return may_act(
            step, identity,
            requestor_manager_id=self._requestor_manager(step, model.submitted_by),
        )

    def describe_current_approvers(self, request_id: UUID) -> str:
        model = self._load(request_id)
        if model.status != ApprovalStatus.PENDING.value:
            return f"request is {model.status}"
        _, step = self._current_step(model)
        return describe_approvers(step)

    def pending_for_identity(self, identity: Identity) -> list[ApprovalRequest]:
        """Pending requests whose current step ``identity`` may act on."""
        rows = self.session.execute(
            select(ApprovalRequestModel)
            .where(ApprovalRequestModel.status == ApprovalStatus.PENDING.value)
            .order_by(ApprovalRequestModel.submitted_at)
        ).scalars()
        result = []
        for model in rows:
            _, step = self._current_step(model)
            manager_id = self._requestor_manager(step, model.submitted_by)
            if may_act(step, identity, requestor_manager_id=manager_id):
                result.append(model.to_dto())
        return result

    def pending_request_ids(self) -> list[UUID]:
        return list(
            self.session.execute(
                select(ApprovalRequestModel.id)
                .where(ApprovalRequestModel.status == ApprovalStatus.PENDING.value)
                .order_by(ApprovalRequestModel.submitted_at)
            ).scalars()
        )

    def current_step(self, request: ApprovalRequest) -> Step:
        workflow = self._workflows.get(request.workflow_id)
        step = workflow.step_by_order(request.current_step_order)
        if step is None:
            raise StepNotFoundError(f"{request.workflow_id}#{request.current_step_order}")
        return step

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, request_id: UUID) -> ApprovalRequestModel:
        model = self.session.get(ApprovalRequestModel, request_id)
        if model is None:
            raise ApprovalRequestNotFoundError(str(request_id))
        return model

    def _find_pending(self, entity_type: str, entity_id: str) -> ApprovalRequestModel | None:
        return self.session.execute(
            select(ApprovalRequestModel).where(
                ApprovalRequestModel.entity_type == entity_type,
                ApprovalRequestModel.entity_id == entity_id,
                ApprovalRequestModel.status == ApprovalStatus.PENDING.value,
            )
        ).scalar_one_or_none()

    def _require_current(self, model: ApprovalRequestModel, expected_step_order: int | None) -> None:
        if model.status != ApprovalStatus.PENDING.value:
            raise ApprovalAlreadyResolvedError(str(model.id), model.status)
        if expected_step_order is not None and expected_step_order != model.current_step_order:
            raise StaleApprovalStateError(str(model.id), expected_step_order)

    def _current_step(self, model: ApprovalRequestModel) -> tuple[WorkflowDefinition, Step]:
        workflow = self._workflows.get(model.workflow_id)
        step = workflow.step_by_order(model.current_step_order)
        if step is None or step.step_id != model.current_step_id:
            raise StepNotFoundError(f"{model.workflow_id}#{model.current_step_order}")
        return workflow, step

    def _requestor_manager(self, step: Step, submitted_by: str | None) -> str | None:
        if submitted_by is None:
            return None
        if not any(isinstance(a, RequestorManagerApprover) for a in step.approvers):
            return None
        return self._directory.manager_of(submitted_by)

    def _compare_and_set(
        self,
        model: ApprovalRequestModel,
        expected_step_order: int,
        values: dict,
    ) -> None:
        """UPDATE the request only if it is still pending at ``expected_step_order``."""
        result = self.session.execute(
            update(ApprovalRequestModel)
            .where(
                ApprovalRequestModel.id == model.id,
                ApprovalRequestModel.status == ApprovalStatus.PENDING.value,
                ApprovalRequestModel.current_step_order == expected_step_order,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "approval_transition_lost_race",
                extra={
                    "request_id": str(model.id),
                    "expected_step_order": expected_step_order,
                },
            )
            raise StaleApprovalStateError(str(model.id), expected_step_order)
        self.session.expire(model)

    def _append_action(
        self,
        request_id: UUID,
        step_id: UUID | None,
        user_id: str | None,
        action: ActionType,
        comment: str | None,
        now: datetime,
    ) -> None:
        last = self.session.execute(
            select(func.max(ApprovalActionModel.sequence)).where(
                ApprovalActionModel.request_id == request_id
            )
        ).scalar()
        self.session.add(
            ApprovalActionModel(
                request_id=request_id,
                sequence=(last or 0) + 1,
                step_id=step_id,
                user_id=user_id,
                action=action.value,
                comment=comment,
                action_date=now,
            )
        )
        self.session.flush()

    def _apply(
        self,
        model: ApprovalRequestModel,
        workflow: WorkflowDefinition,
        step: Step,
        action: ActionType,
        *,
        actor_id: str | None,
        comment: str | None,
        now: datetime,
        escalate: bool = False,
    ) -> ApprovalRequest:
        plan = plan_transition(workflow, step.step_order, action)

        values: dict = {}
        if plan.advances:
            values["current_step_id"] = plan.next_step.step_id
            values["current_step_order"] = plan.next_step.step_order
        if plan.is_terminal:
            values["status"] = plan.new_status.value
            values["completed_at"] = now
        if escalate:
            values["escalation_count"] = ApprovalRequestModel.escalation_count + 1
            values["escalated_at"] = now
        if not values:
            # comment: touch the row so the pending-at-step guard still applies
            values["status"] = ApprovalStatus.PENDING.value

        self._compare_and_set(model, step.step_order, values)
        self._append_action(model.id, step.step_id, actor_id, action, comment, now)

        logger.info(
            "approval_transition_applied",
            extra={
                "action": action.value,
                "from_step_order": step.step_order,
                "to_step_order": model.current_step_order,
                "status": model.status,
                "system": actor_id is None,
            },
        )

        self._run_side_effects(model, plan, actor_id=actor_id, comment=comment)
        return model.to_dto()

    def _run_side_effects(
        self,
        model: ApprovalRequestModel,
        plan: TransitionPlan,
        *,
        actor_id: str | None,
        comment: str | None,
    ) -> None:
        if plan.advances:
            self._notify_step_approvers(model, plan.next_step)
            return
        if not plan.is_terminal:
            return

        outcome = plan.new_status.value
        self._synchronizer.sync(
            model.entity_type,
            model.entity_id,
            outcome,
            actor_id=actor_id,
            comment=comment,
        )
        self._dispatcher.dispatch(
            OUTCOME_TEMPLATES[outcome],
            NotificationTarget.users(model.submitted_by),
            comment=comment,
            **self._message_context(model, None),
        )

    def _notify_step_approvers(self, model: ApprovalRequestModel, step: Step) -> None:
        self._dispatcher.dispatch(
            "approval_required",
            target_for_step(step, self._requestor_manager(step, model.submitted_by)),
            **self._message_context(model, step),
        )

    def _message_context(self, model: ApprovalRequestModel, step: Step | None) -> dict:
        context = {
            "entity_type": model.entity_type,
            "entity_id": model.entity_id,
            "request_id": model.id,
            "label": self._entity_labels.get(
                model.entity_type, default_entity_label(model.entity_type)
            ),
            "number": model.entity_number or "N/A",
        }
        if step is not None:
            context["step_name"] = step.step_name
            context["hours"] = step.timeout_hours
        return context
