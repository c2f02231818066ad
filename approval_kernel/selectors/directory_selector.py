"""
SqlUserDirectory -- ``UserDirectory`` backed by the user_roles and
user_profiles tables.

Every call queries the tables afresh: role membership is resolved at
dispatch/authorization time, never cached.
"""

from sqlalchemy import select

from approval_kernel.models.directory import UserProfileModel, UserRoleModel
from approval_kernel.selectors.base import BaseSelector


class SqlUserDirectory(BaseSelector):
    """Default directory used when the engine is not given one."""

    def users_with_role(self, role: str) -> list[str]:
        rows = self.session.execute(
            select(UserRoleModel.user_id)
            .where(UserRoleModel.role == role)
            .order_by(UserRoleModel.user_id)
        ).scalars()
        return list(rows)

    def manager_of(self, user_id: str) -> str | None:
        return self.session.execute(
            select(UserProfileModel.manager_id).where(
                UserProfileModel.user_id == user_id
            )
        ).scalar_one_or_none()

    def roles_of(self, user_id: str) -> frozenset[str]:
        rows = self.session.execute(
            select(UserRoleModel.role).where(UserRoleModel.user_id == user_id)
        ).scalars()
        return frozenset(rows)
