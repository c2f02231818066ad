"""
Module: approval_kernel.models.directory
Responsibility: Minimal user directory tables backing the default
    SQL ``UserDirectory``: role grants and reporting lines.

Architecture position: Kernel > Models.  May import from db/ only.

Deployments with their own identity store inject a different directory
and leave these tables empty.
"""

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base


class UserRoleModel(Base):
    """A role currently held by a user."""

    __tablename__ = "user_roles"

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
        Index("ix_user_roles_role", "role"),
    )

    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        return f"<UserRole {self.user_id}:{self.role}>"


class UserProfileModel(Base):
    """Display name and manager of a user."""

    __tablename__ = "user_profiles"

    user_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    full_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    manager_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<UserProfile {self.user_id} manager={self.manager_id}>"
