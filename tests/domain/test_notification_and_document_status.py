"""
Tests for notification templates/targets and document status values -- pure.
"""

from datetime import date, datetime, timezone
from uuid import uuid4

import pytest

from approval_kernel.domain.document_status import (
    DocumentStatusMapping,
    StatusUpdate,
    SyncOutcome,
    TimestampKind,
    build_update_values,
)
from approval_kernel.domain.notification import (
    OUTCOME_TEMPLATES,
    TEMPLATES,
    NotificationTarget,
    NotificationType,
    dedupe_recipients,
    target_for_step,
)
from approval_kernel.domain.workflow import (
    RequestorManagerApprover,
    RoleApprover,
    Step,
    UserApprover,
)

NOW = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)


class TestTemplates:

    def test_every_outcome_has_a_template(self):
        assert set(OUTCOME_TEMPLATES) == {o.value for o in SyncOutcome}
        assert all(name in TEMPLATES for name in OUTCOME_TEMPLATES.values())

    def test_rejection_message_includes_comment(self):
        title, message = TEMPLATES["approval_rejected"].render(
            label="Purchase Order", number="PO-1", comment="Over budget",
        )
        assert title == "Request Rejected"
        assert message == "Purchase Order PO-1 has been rejected: Over budget"

    def test_none_values_fall_back_to_defaults(self):
        _, message = TEMPLATES["approval_required"].render(label=None, number=None, step_name="Review")
        assert message == "Document N/A is awaiting your approval at step 'Review'"

    def test_escalation_templates_share_type(self):
        assert TEMPLATES["escalation_submitter"].notification_type is NotificationType.ESCALATION
        assert TEMPLATES["escalation_approver"].notification_type is NotificationType.ESCALATION


class TestTargets:

    def test_dedupe_keeps_first_seen_order(self):
        assert dedupe_recipients(["U2", None, "U1", "U2", " ", "U3"]) == ("U2", "U1", "U3")

    def test_merge(self):
        merged = NotificationTarget.users("U1").merge(NotificationTarget(roles=("buyer",)))
        assert merged == NotificationTarget(user_ids=("U1",), roles=("buyer",))
        assert NotificationTarget().is_empty

    def test_target_for_step(self):
        review = Step(
            uuid4(), 1, "Review",
            (UserApprover("U7"), RoleApprover("buyer"), RequestorManagerApprover()),
        )
        assert target_for_step(review, "M1") == NotificationTarget(
            user_ids=("U7", "M1"), roles=("buyer",),
        )
        assert target_for_step(review).user_ids == ("U7",)


class TestDocumentStatusValues:

    def test_datetime_timestamp_and_actor(self):
        update = StatusUpdate(
            "status", "approved", timestamp_field="approved_date", actor_field="approved_by",
        )
        assert build_update_values(update, now=NOW, actor_id="U2") == {
            "status": "approved",
            "approved_date": NOW,
            "approved_by": "U2",
        }

    def test_date_timestamp(self):
        update = StatusUpdate(
            "status", "approved", timestamp_field="approved_date", timestamp_kind=TimestampKind.DATE,
        )
        assert build_update_values(update, now=NOW)["approved_date"] == date(2024, 3, 15)

    def test_actor_and_comment_only_when_present(self):
        update = StatusUpdate("status", "draft", actor_field="approved_by", comment_field="notes")
        assert build_update_values(update, now=NOW, actor_id=None, comment="   ") == {"status": "draft"}

    def test_comment_prefix(self):
        update = StatusUpdate("status", "draft", comment_field="notes", comment_prefix="Returned: ")
        assert build_update_values(update, now=NOW, comment="fix it")["notes"] == "Returned: fix it"

    def test_clear_fields_written_as_null(self):
        update = StatusUpdate(
            "status", "rejected", comment_field="notes", clear_fields=("approved_date",),
        )
        assert build_update_values(update, now=NOW, comment="No") == {
            "status": "rejected",
            "notes": "No",
            "approved_date": None,
        }

    def test_clear_fields_validated(self):
        with pytest.raises(ValueError, match="clear_fields"):
            StatusUpdate("status", "rejected", clear_fields=("approved_date; --",))

    @pytest.mark.parametrize("bad", ["status;", "1status", "st atus", ""])
    def test_identifiers_validated(self, bad):
        with pytest.raises(ValueError):
            StatusUpdate(bad, "x")
        with pytest.raises(ValueError):
            DocumentStatusMapping(entity_type="po", table=bad)

    def test_unmapped_and_unknown_outcomes(self):
        mapping = DocumentStatusMapping(
            entity_type="po",
            table="purchase_orders",
            outcomes={SyncOutcome.APPROVED: StatusUpdate("status", "approved")},
        )
        assert mapping.update_for("approved").status_value == "approved"
        assert mapping.update_for(SyncOutcome.REJECTED) is None
        assert mapping.update_for("cancelled") is None
