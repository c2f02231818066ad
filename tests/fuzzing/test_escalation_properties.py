"""
Property-based tests for the pure approval state machine and SLA evaluation.

Properties:
- Any sequence of actions applied to a request keeps the step within
  bounds, never leaves a terminal status, and advances at most one step
  per approval.
- An escalation decision exists exactly when the request is pending,
  its step has an SLA, and evaluation time is strictly past the deadline.
- Recipient de-duplication is idempotent and order preserving.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st

from approval_batch.domain.escalation import compute_deadline, evaluate_escalation
from approval_kernel.domain.approval import (
    TERMINAL_APPROVAL_STATUSES,
    ActionType,
    ApprovalRequest,
    ApprovalStatus,
    plan_transition,
)
from approval_kernel.domain.notification import dedupe_recipients
from approval_kernel.domain.workflow import EscalationAction, RoleApprover, Step, build_workflow

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

transition_actions = st.sampled_from(
    [ActionType.APPROVE, ActionType.REJECT, ActionType.SEND_BACK, ActionType.COMMENT]
)


def make_workflow(step_count):
    return build_workflow(
        workflow_id=uuid4(),
        entity_type="purchase_order",
        name="PO",
        steps=[
            Step(uuid4(), order, f"Step {order}", (RoleApprover("buyer"),))
            for order in range(1, step_count + 1)
        ],
    )


@settings(max_examples=200, deadline=None)
@given(
    step_count=st.integers(min_value=1, max_value=6),
    actions=st.lists(transition_actions, max_size=20),
)
def test_action_sequences_respect_lifecycle(step_count, actions):
    workflow = make_workflow(step_count)
    status = ApprovalStatus.PENDING
    step_order = 1
    approvals = 0

    for action in actions:
        if status in TERMINAL_APPROVAL_STATUSES:
            break
        plan = plan_transition(workflow, step_order, action)
        if plan.advances:
            assert plan.next_step.step_order == step_order + 1
            step_order = plan.next_step.step_order
        status = plan.new_status
        if action is ActionType.APPROVE:
            approvals += 1
        assert 1 <= step_order <= step_count

    if status is ApprovalStatus.APPROVED:
        assert approvals == step_count
        assert step_order == step_count
    if status is ApprovalStatus.PENDING:
        assert step_order == approvals + 1


@settings(max_examples=300, deadline=None)
@given(
    timeout_hours=st.one_of(st.none(), st.integers(min_value=-5, max_value=500)),
    elapsed_minutes=st.integers(min_value=0, max_value=60 * 24 * 40),
    action=st.sampled_from(list(EscalationAction)),
    status=st.sampled_from(list(ApprovalStatus)),
)
def test_escalation_iff_pending_and_overdue(timeout_hours, elapsed_minutes, action, status):
    step = Step(uuid4(), 1, "Review", timeout_hours=timeout_hours, escalation_action=action)
    request = ApprovalRequest(
        request_id=uuid4(),
        entity_type="purchase_order",
        entity_id="PO-1",
        entity_number=None,
        workflow_id=uuid4(),
        status=status,
        current_step_id=step.step_id,
        current_step_order=1,
        submitted_by="R1",
        submitted_at=T0,
    )
    now = T0 + timedelta(minutes=elapsed_minutes)

    decision = evaluate_escalation(request, step, now)
    deadline = compute_deadline(T0, timeout_hours)
    expected = status is ApprovalStatus.PENDING and deadline is not None and now > deadline

    assert (decision is not None) is expected
    if decision is not None:
        assert decision.deadline == deadline
        assert decision.action is action
        assert f"({timeout_hours}h SLA exceeded)" in decision.comment


@given(st.lists(st.one_of(st.none(), st.sampled_from(["", " ", "U1", "U2", "U3", "M1"]))))
def test_dedupe_recipients_idempotent(user_ids):
    once = dedupe_recipients(user_ids)
    assert dedupe_recipients(once) == once
    assert len(set(once)) == len(once)
    assert all(u.strip() for u in once)
    firsts = [u for i, u in enumerate(user_ids) if u and u.strip() and u not in user_ids[:i]]
    assert list(once) == firsts
