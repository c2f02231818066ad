"""
Directory and inbox selector tests.

Verifies:
- SqlUserDirectory reads role membership and managers afresh on every call.
- NotificationSelector filters and orders a user's inbox and a request's
  notification trail.
"""

import pytest

from approval_kernel.domain.notification import NotificationTarget
from approval_kernel.models.directory import UserProfileModel, UserRoleModel
from approval_kernel.selectors.directory_selector import SqlUserDirectory
from approval_kernel.selectors.notification_selector import NotificationSelector


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sql_directory(session):
    session.add_all([
        UserRoleModel(user_id="U3", role="buyer"),
        UserRoleModel(user_id="U1", role="buyer"),
        UserRoleModel(user_id="U1", role="finance_manager"),
        UserProfileModel(user_id="R1", full_name="Requester One", manager_id="M1"),
        UserProfileModel(user_id="M1", full_name="Manager One"),
    ])
    session.flush()
    return SqlUserDirectory(session)


@pytest.fixture
def inbox(session):
    return NotificationSelector(session)


class TestSqlUserDirectory:

    def test_users_with_role_sorted(self, sql_directory):
        assert sql_directory.users_with_role("buyer") == ["U1", "U3"]
        assert sql_directory.users_with_role("auditor") == []

    def test_roles_of(self, sql_directory):
        assert sql_directory.roles_of("U1") == frozenset({"buyer", "finance_manager"})
        assert sql_directory.roles_of("nobody") == frozenset()

    def test_manager_of(self, sql_directory):
        assert sql_directory.manager_of("R1") == "M1"
        assert sql_directory.manager_of("M1") is None
        assert sql_directory.manager_of("unknown") is None

    def test_membership_changes_visible_immediately(self, session, sql_directory):
        session.add(UserRoleModel(user_id="U9", role="buyer"))
        session.flush()
        assert sql_directory.users_with_role("buyer") == ["U1", "U3", "U9"]


class TestNotificationSelector:

    def test_newest_first_and_limit(self, uow, session, inbox, deterministic_clock):
        for number in ("PO-1", "PO-2", "PO-3"):
            uow.dispatcher.dispatch(
                "approval_approved", NotificationTarget.users("U1"),
                label="Purchase Order", number=number,
            )
            deterministic_clock.advance(60)
        session.flush()

        messages = [n.message for n in inbox.list_for_user("U1", limit=2)]
        assert messages == [
            "Purchase Order PO-3 has been approved",
            "Purchase Order PO-2 has been approved",
        ]

    def test_for_request(self, approval_engine, po_workflow, session, inbox):
        request = approval_engine.submit(
            "purchase_order", "PO-7", "PO-0007", po_workflow.workflow_id, "R1",
        )
        trail = inbox.for_request(request.request_id)
        assert [(n.user_id, n.notification_type) for n in trail] == [
            ("U1", "approval_required"),
            ("U3", "approval_required"),
        ]
        assert all(n.created_at is not None for n in trail)

    def test_unread_count_ignores_other_users(self, uow, session, inbox):
        uow.dispatcher.dispatch("approval_approved", NotificationTarget.users("U1", "U2"))
        session.flush()
        assert inbox.unread_count("U1") == 1
        assert inbox.unread_count("U4") == 0
