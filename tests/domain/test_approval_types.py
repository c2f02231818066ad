"""
Tests for approval domain types -- pure, no database.

Covers:
- Status lifecycle (APPROVAL_TRANSITIONS)
- Action parsing
- plan_transition(): approve / reject / send_back / comment
- Frozen value objects
"""

import dataclasses
from uuid import uuid4

import pytest

from approval_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    HUMAN_ACTIONS,
    SYSTEM_TRANSITION_ACTIONS,
    TERMINAL_APPROVAL_STATUSES,
    ActionType,
    ApprovalActionRecord,
    ApprovalStatus,
    Identity,
    is_blank,
    parse_action,
    plan_transition,
)
from approval_kernel.domain.workflow import RoleApprover, Step, build_workflow
from approval_kernel.exceptions import UnsupportedActionError


def workflow_with(step_count):
    return build_workflow(
        workflow_id=uuid4(),
        entity_type="purchase_order",
        name="PO",
        steps=[
            Step(uuid4(), order, f"Step {order}", (RoleApprover("buyer"),))
            for order in range(1, step_count + 1)
        ],
    )


class TestStatusLifecycle:

    def test_pending_is_only_non_terminal(self):
        assert set(ApprovalStatus) - TERMINAL_APPROVAL_STATUSES == {ApprovalStatus.PENDING}

    @pytest.mark.parametrize("status", sorted(TERMINAL_APPROVAL_STATUSES))
    def test_terminal_statuses_have_no_edges(self, status):
        assert APPROVAL_TRANSITIONS[status] == frozenset()

    def test_pending_reaches_every_status(self):
        assert APPROVAL_TRANSITIONS[ApprovalStatus.PENDING] == frozenset(ApprovalStatus)


class TestParseAction:

    @pytest.mark.parametrize("raw", ["approve", "reject", "send_back", "comment"])
    def test_human_actions(self, raw):
        assert parse_action(raw) is ActionType(raw)

    @pytest.mark.parametrize("raw", ["submit", "escalate", "delegate", "APPROVE", "nope"])
    def test_rejects_non_human_actions(self, raw):
        with pytest.raises(UnsupportedActionError) as exc_info:
            parse_action(raw)
        assert exc_info.value.code == "UNSUPPORTED_ACTION"

    def test_system_transitions_limited_to_approve_and_reject(self):
        assert parse_action("reject", SYSTEM_TRANSITION_ACTIONS) is ActionType.REJECT
        with pytest.raises(UnsupportedActionError):
            parse_action("send_back", SYSTEM_TRANSITION_ACTIONS)

    def test_delegate_is_recordable_but_not_actionable(self):
        assert ActionType.DELEGATE not in HUMAN_ACTIONS

    @pytest.mark.parametrize("comment,blank", [(None, True), ("", True), ("  \t", True), ("ok", False)])
    def test_is_blank(self, comment, blank):
        assert is_blank(comment) is blank


class TestPlanTransition:

    def test_approve_advances(self):
        workflow = workflow_with(3)
        plan = plan_transition(workflow, 1, ActionType.APPROVE)
        assert plan.new_status is ApprovalStatus.PENDING
        assert plan.next_step.step_order == 2
        assert plan.advances and not plan.is_terminal

    def test_approve_at_last_step_completes(self):
        plan = plan_transition(workflow_with(2), 2, ActionType.APPROVE)
        assert plan.new_status is ApprovalStatus.APPROVED
        assert plan.next_step is None
        assert plan.is_terminal

    def test_single_step_approve_completes(self):
        assert plan_transition(workflow_with(1), 1, ActionType.APPROVE).is_terminal

    @pytest.mark.parametrize("step_order", [1, 2, 3])
    def test_reject_terminal_at_any_step(self, step_order):
        plan = plan_transition(workflow_with(3), step_order, ActionType.REJECT)
        assert plan.new_status is ApprovalStatus.REJECTED
        assert not plan.advances

    def test_send_back_returns(self):
        plan = plan_transition(workflow_with(2), 2, ActionType.SEND_BACK)
        assert plan.new_status is ApprovalStatus.RETURNED
        assert plan.is_terminal

    def test_comment_changes_nothing(self):
        plan = plan_transition(workflow_with(2), 1, ActionType.COMMENT)
        assert plan.new_status is ApprovalStatus.PENDING
        assert not plan.changes_state
        assert not plan.advances

    @pytest.mark.parametrize("action", [ActionType.SUBMIT, ActionType.ESCALATE])
    def test_non_transition_actions_rejected(self, action):
        with pytest.raises(UnsupportedActionError):
            plan_transition(workflow_with(1), 1, action)


class TestValueObjects:

    def test_identity_of(self):
        identity = Identity.of("U1", ["buyer", "buyer"])
        assert identity.roles == frozenset({"buyer"})
        assert Identity.of("U2").roles == frozenset()

    def test_action_record_frozen_and_system_flag(self):
        record = ApprovalActionRecord(
            action_id=uuid4(), request_id=uuid4(), step_id=None,
            user_id=None, action=ActionType.ESCALATE,
        )
        assert record.is_system
        with pytest.raises(dataclasses.FrozenInstanceError):
            record.comment = "edited"
