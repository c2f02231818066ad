"""
Authorization Resolver (``approval_kernel.domain.authorization``).

Responsibility
--------------
Decides whether an identity may act on a step.  Pure predicate with no
side effects, used both to guard transitions and to decide whether a
viewer should see action controls at all.

Architecture position
---------------------
**Kernel domain layer**.  ZERO I/O.  Role membership arrives on the
``Identity``; the submitter's manager, when needed, is passed in by the
caller (resolved through the injected ``UserDirectory``).

Invariants enforced
-------------------
* Any-match: authorized iff at least one approver of the step matches.
* An empty approver set authorizes nobody.
"""

from __future__ import annotations

from approval_kernel.domain.approval import Identity
from approval_kernel.domain.workflow import (
    Approver,
    RequestorManagerApprover,
    RoleApprover,
    Step,
    UserApprover,
)

NO_APPROVERS_WARNING = "no approvers configured for this step"


def approver_matches(
    approver: Approver,
    identity: Identity,
    *,
    requestor_manager_id: str | None = None,
) -> bool:
    """Return True if ``identity`` satisfies this single approver rule."""
    match approver:
        case UserApprover(user_id=user_id):
            return user_id == identity.user_id
        case RoleApprover(role=role):
            return role in identity.roles
        case RequestorManagerApprover():
            return (
                requestor_manager_id is not None
                and requestor_manager_id == identity.user_id
            )
    return False


def may_act(
    step: Step,
    identity: Identity,
    *,
    requestor_manager_id: str | None = None,
) -> bool:
    """Return True if ``identity`` may act on ``step``."""
    return any(
        approver_matches(a, identity, requestor_manager_id=requestor_manager_id)
        for a in step.approvers
    )


def describe_approver(approver: Approver) -> str:
    match approver:
        case UserApprover(user_id=user_id):
            return f"user '{user_id}'"
        case RoleApprover(role=role):
            return f"role '{role}'"
        case RequestorManagerApprover():
            return "the requestor's manager"
    return str(approver)


def describe_approvers(step: Step) -> str:
    """Human-readable list of who may act on ``step``.

    Empty approver sets produce a configuration warning instead of an
    empty string.
    """
    if not step.approvers:
        return NO_APPROVERS_WARNING
    return " or ".join(describe_approver(a) for a in step.approvers)
