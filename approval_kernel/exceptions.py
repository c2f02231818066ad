"""
Typed Exception Hierarchy for the Approval Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the engine (document screens, API handlers, the escalation
sweep) must react differently to "you may not act", "the request moved on
without you", and "you forgot the comment".  Parsing message strings for
that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        engine.act(request_id, user_id, roles, "reject", comment=None)
    except CommentRequiredError as e:
        reprompt(f"A comment is required to {e.action}")
    except UnauthorizedApproverError as e:
        show_read_only(reason=e.eligible_approvers)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalKernelError (base)
    |
    +-- NotFoundError
    |   +-- ApprovalRequestNotFoundError
    |   +-- WorkflowNotFoundError
    |   +-- StepNotFoundError
    |
    +-- ForbiddenError
    |   +-- UnauthorizedApproverError
    |
    +-- InvalidTransitionError
    |   +-- ApprovalAlreadyResolvedError
    |   +-- StaleApprovalStateError
    |   +-- DuplicateApprovalRequestError
    |   +-- UnsupportedActionError
    |
    +-- ApprovalValidationError
    |   +-- CommentRequiredError
    |   +-- WorkflowDefinitionError
    |
    +-- SyncFailureError          (recovered locally, logged)
    +-- NotifyFailureError        (recovered locally, logged)
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | APPROVAL_REQUEST_NOT_FOUND  | Unknown request id
                | WORKFLOW_NOT_FOUND          | Unknown workflow / no active workflow
                | STEP_NOT_FOUND              | Request points at a missing step
----------------|-----------------------------|-----------------------------------------
Forbidden       | UNAUTHORIZED_APPROVER       | Identity not an approver of current step
----------------|-----------------------------|-----------------------------------------
Transition      | APPROVAL_ALREADY_RESOLVED   | Request is no longer pending
                | STALE_APPROVAL_STATE        | Lost a race / step moved on
                | DUPLICATE_APPROVAL_REQUEST  | Entity already has a pending request
                | UNSUPPORTED_ACTION          | Action not valid for this entry point
----------------|-----------------------------|-----------------------------------------
Validation      | COMMENT_REQUIRED            | reject / send_back without comment
                | INVALID_WORKFLOW_DEFINITION | Empty / non-contiguous steps, bad approver
----------------|-----------------------------|-----------------------------------------
Side effects    | SYNC_FAILURE                | Document status projection failed
                | NOTIFY_FAILURE              | Notification insert failed
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Editing an action or a resolved request

Only NotFound, Forbidden, InvalidTransition and Validation errors are
surfaced to callers.  SyncFailureError and NotifyFailureError are raised
inside the side-effect services, logged there, and never propagate past
them: the approval record is authoritative, the projections are not.
===============================================================================
"""


class ApprovalKernelError(Exception):
    """
    Base exception for all approval kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "APPROVAL_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(ApprovalKernelError):
    """Base exception for missing requests, workflows, or steps."""

    code: str = "NOT_FOUND"


class ApprovalRequestNotFoundError(NotFoundError):
    """Approval request with given ID was not found."""

    code: str = "APPROVAL_REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Approval request not found: {request_id}")


class WorkflowNotFoundError(NotFoundError):
    """No workflow with the given ID, or no active workflow for an entity type."""

    code: str = "WORKFLOW_NOT_FOUND"

    def __init__(self, workflow_ref: str):
        self.workflow_ref = workflow_ref
        super().__init__(f"Approval workflow not found: {workflow_ref}")


class StepNotFoundError(NotFoundError):
    """A request references a step that does not exist."""

    code: str = "STEP_NOT_FOUND"

    def __init__(self, step_ref: str):
        self.step_ref = step_ref
        super().__init__(f"Approval step not found: {step_ref}")


# Authorization exceptions


class ForbiddenError(ApprovalKernelError):
    """Base exception for authorization failures."""

    code: str = "FORBIDDEN"


class UnauthorizedApproverError(ForbiddenError):
    """
    Identity is not an approver of the request's current step.

    ``eligible_approvers`` describes who may act right now, so the caller
    can render the request read-only with a useful explanation.
    """

    code: str = "UNAUTHORIZED_APPROVER"

    def __init__(
        self,
        request_id: str,
        user_id: str,
        step_name: str,
        eligible_approvers: str,
    ):
        self.request_id = request_id
        self.user_id = user_id
        self.step_name = step_name
        self.eligible_approvers = eligible_approvers
        super().__init__(
            f"User {user_id} may not act on request {request_id} at step "
            f"'{step_name}'. Waiting for approval from: {eligible_approvers}"
        )


# Transition exceptions


class InvalidTransitionError(ApprovalKernelError):
    """Base exception for transitions not valid from the current state."""

    code: str = "INVALID_TRANSITION"


class ApprovalAlreadyResolvedError(InvalidTransitionError):
    """Request has left the pending state."""

    code: str = "APPROVAL_ALREADY_RESOLVED"

    def __init__(self, request_id: str, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(
            f"Approval request {request_id} is not pending (status={status})"
        )


class StaleApprovalStateError(InvalidTransitionError):
    """
    Request is no longer in the state the caller expected.

    Raised when a compare-and-set transition affects no rows because a
    concurrent transition won, or when the caller's expected step no
    longer matches the request's current step.
    """

    code: str = "STALE_APPROVAL_STATE"

    def __init__(self, request_id: str, expected_step_order: int | None):
        self.request_id = request_id
        self.expected_step_order = expected_step_order
        super().__init__(
            f"Approval request {request_id} changed concurrently: expected "
            f"pending at step {expected_step_order}"
        )


class DuplicateApprovalRequestError(InvalidTransitionError):
    """An entity already has an active (pending) approval request."""

    code: str = "DUPLICATE_APPROVAL_REQUEST"

    def __init__(self, entity_type: str, entity_id: str, existing_request_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.existing_request_id = existing_request_id
        super().__init__(
            f"{entity_type} {entity_id} already has a pending approval "
            f"request: {existing_request_id}"
        )


class UnsupportedActionError(InvalidTransitionError):
    """Action is not valid through this entry point."""

    code: str = "UNSUPPORTED_ACTION"

    def __init__(self, action: str, allowed: tuple[str, ...]):
        self.action = action
        self.allowed = allowed
        super().__init__(
            f"Unsupported approval action '{action}'; expected one of "
            f"{', '.join(allowed)}"
        )


# Validation exceptions


class ApprovalValidationError(ApprovalKernelError):
    """Base exception for invalid input."""

    code: str = "VALIDATION_ERROR"


class CommentRequiredError(ApprovalValidationError):
    """reject and send_back must carry a non-blank comment."""

    code: str = "COMMENT_REQUIRED"

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"A comment is required to {action}")


class WorkflowDefinitionError(ApprovalValidationError):
    """Workflow definition is structurally invalid."""

    code: str = "INVALID_WORKFLOW_DEFINITION"

    def __init__(self, workflow_ref: str, reason: str):
        self.workflow_ref = workflow_ref
        self.reason = reason
        super().__init__(f"Invalid workflow definition {workflow_ref}: {reason}")


# Side-effect failures (never surfaced to callers)


class SyncFailureError(ApprovalKernelError):
    """The originating document could not be updated."""

    code: str = "SYNC_FAILURE"

    def __init__(self, entity_type: str, entity_id: str, outcome: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.outcome = outcome
        self.reason = reason
        super().__init__(
            f"Failed to sync {outcome} status onto {entity_type}:{entity_id}: {reason}"
        )


class NotifyFailureError(ApprovalKernelError):
    """Notification rows could not be written."""

    code: str = "NOTIFY_FAILURE"

    def __init__(self, notification_type: str, recipient_count: int, reason: str):
        self.notification_type = notification_type
        self.recipient_count = recipient_count
        self.reason = reason
        super().__init__(
            f"Failed to dispatch {notification_type} notification to "
            f"{recipient_count} recipient(s): {reason}"
        )


# Immutability


class ImmutabilityViolationError(ApprovalKernelError):
    """
    Attempted to modify or delete an immutable record.

    Approval actions are append-only; resolved requests only accept
    escalation bookkeeping updates.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
