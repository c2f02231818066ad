"""
User directory lookup (``approval_kernel.domain.directory``).

Responsibility:
    Defines the injected lookup capability the engine uses to expand a
    role into its current members and to find a submitter's manager.
    Role membership changes independently of workflow definitions, so it
    is queried at dispatch and authorization time, never cached on a step.

Architecture position:
    Kernel > Domain.  The protocol and the in-memory implementation are
    pure; the SQL-backed implementation lives in
    ``approval_kernel.selectors.directory_selector``.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Protocol, runtime_checkable


@runtime_checkable
class UserDirectory(Protocol):
    """Role membership and reporting-line lookup."""

    def users_with_role(self, role: str) -> list[str]:
        """Return the ids of every user currently holding ``role``."""
        ...

    def manager_of(self, user_id: str) -> str | None:
        """Return the manager of ``user_id``, or None if unknown."""
        ...


class StaticUserDirectory:
    """In-memory directory, for tests and embedded use.

    Args:
        roles: user id -> roles held by that user.
        managers: user id -> manager user id.
    """

    def __init__(
        self,
        roles: Mapping[str, Iterable[str]] | None = None,
        managers: Mapping[str, str] | None = None,
    ):
        self._roles = {user: set(held) for user, held in (roles or {}).items()}
        self._managers = dict(managers or {})

    def grant(self, user_id: str, role: str) -> None:
        self._roles.setdefault(user_id, set()).add(role)

    def revoke(self, user_id: str, role: str) -> None:
        self._roles.get(user_id, set()).discard(role)

    def set_manager(self, user_id: str, manager_id: str | None) -> None:
        if manager_id is None:
            self._managers.pop(user_id, None)
        else:
            self._managers[user_id] = manager_id

    def roles_of(self, user_id: str) -> frozenset[str]:
        return frozenset(self._roles.get(user_id, ()))

    def users_with_role(self, role: str) -> list[str]:
        return sorted(user for user, held in self._roles.items() if role in held)

    def manager_of(self, user_id: str) -> str | None:
        return self._managers.get(user_id)
