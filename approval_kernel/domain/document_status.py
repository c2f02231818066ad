"""
Document status mapping (``approval_kernel.domain.document_status``).

Responsibility:
    Describes how a final approval outcome is projected onto the
    originating document's own row: which table, which key column, and
    for each outcome which status value and auxiliary fields to write.
    The mapping is configuration (see ``approval_config``); this module
    only holds the compiled form and the pure value builder.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Only outcomes present in a mapping are synced; everything else is
      a no-op.
    - Identifiers (table and column names) are validated when the mapping
      is built, so the SQL writer can quote them safely.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping


class SyncOutcome(str, Enum):
    """Approval outcomes that may be projected onto a document."""

    APPROVED = "approved"
    REJECTED = "rejected"
    RETURNED = "returned"


class TimestampKind(str, Enum):
    DATE = "date"
    DATETIME = "datetime"


_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_identifier(name: str, what: str) -> str:
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid {what} identifier: {name!r}")
    return name


@dataclass(frozen=True)
class StatusUpdate:
    """Field writes for one outcome of one document type."""

    status_field: str
    status_value: str
    timestamp_field: str | None = None
    timestamp_kind: TimestampKind = TimestampKind.DATETIME
    actor_field: str | None = None
    comment_field: str | None = None
    comment_prefix: str = ""
    clear_fields: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        validate_identifier(self.status_field, "status_field")
        for name in self.clear_fields:
            validate_identifier(name, "clear_fields")
        for name, what in (
            (self.timestamp_field, "timestamp_field"),
            (self.actor_field, "actor_field"),
            (self.comment_field, "comment_field"),
        ):
            if name is not None:
                validate_identifier(name, what)


@dataclass(frozen=True)
class DocumentStatusMapping:
    """Outcome -> ``StatusUpdate`` for one entity type."""

    entity_type: str
    table: str
    key_column: str = "id"
    outcomes: Mapping[SyncOutcome, StatusUpdate] = field(default_factory=dict)

    def __post_init__(self) -> None:
        validate_identifier(self.table, "table")
        validate_identifier(self.key_column, "key_column")

    def update_for(self, outcome: SyncOutcome | str) -> StatusUpdate | None:
        try:
            return self.outcomes.get(SyncOutcome(outcome))
        except ValueError:
            return None


def build_update_values(
    update: StatusUpdate,
    *,
    now: datetime,
    actor_id: str | None = None,
    comment: str | None = None,
) -> dict[str, Any]:
    """Column -> value dict for one document write.

    The actor and comment fields are only written when a value is
    present, so a system-originated outcome leaves them untouched.
    Fields listed in ``clear_fields`` are written as NULL.
    """
    values: dict[str, Any] = {update.status_field: update.status_value}
    if update.timestamp_field is not None:
        if update.timestamp_kind is TimestampKind.DATE:
            values[update.timestamp_field] = now.date()
        else:
            values[update.timestamp_field] = now
    if update.actor_field is not None and actor_id is not None:
        values[update.actor_field] = actor_id
    if update.comment_field is not None and comment and comment.strip():
        values[update.comment_field] = f"{update.comment_prefix}{comment}"
    for name in update.clear_fields:
        values.setdefault(name, None)
    return values
