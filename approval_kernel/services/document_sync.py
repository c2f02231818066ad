"""
DocumentStatusSynchronizer -- projects approval outcomes onto documents.

Responsibility:
    When a request reaches an outcome (approved, rejected, returned), looks
    up the entity type's ``DocumentStatusMapping`` and writes the mapped
    status (plus timestamp / actor / comment fields) onto the originating
    document through a ``DocumentStatusWriter``.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.
    The mapping table is configuration (``approval_config``) passed in by
    the caller; adding an entity type never touches this module.

Invariants enforced:
    - Unmapped entity types and unmapped outcomes are a no-op.
    - Best-effort projection: the write runs in a SAVEPOINT; a failure
      rolls back only the document write, is logged as SyncFailureError,
      and never reaches the caller.  The approval record is authoritative.

Failure modes:
    - None surfaced.  ``sync`` returns False and logs
      ``document_sync_failed``.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from sqlalchemy import column, table, update
from sqlalchemy.orm import Session

from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.document_status import (
    DocumentStatusMapping,
    SyncOutcome,
    build_update_values,
)
from approval_kernel.exceptions import SyncFailureError
from approval_kernel.logging_config import get_logger
from approval_kernel.services.base import BaseService

logger = get_logger("services.document_sync")


class DocumentStatusWriter(Protocol):
    """Writes field values onto one external document row.

    Returns the number of rows affected.
    """

    def write(
        self,
        mapping: DocumentStatusMapping,
        entity_id: str,
        values: Mapping[str, Any],
    ) -> int:
        ...


class SqlDocumentStatusWriter:
    """Issues a Core UPDATE against the document's table in ``session``.

    Identifiers come from a validated ``DocumentStatusMapping``; values are
    always bound parameters.
    """

    def __init__(self, session: Session):
        self.session = session

    def write(
        self,
        mapping: DocumentStatusMapping,
        entity_id: str,
        values: Mapping[str, Any],
    ) -> int:
        target = table(
            mapping.table,
            column(mapping.key_column),
            *(column(name) for name in values),
        )
        result = self.session.execute(
            update(target)
            .where(target.c[mapping.key_column] == entity_id)
            .values(dict(values))
        )
        return result.rowcount


class DocumentStatusSynchronizer(BaseService):
    """Maps outcomes to document updates using the configured mappings."""

    def __init__(
        self,
        session: Session,
        mappings: Mapping[str, DocumentStatusMapping],
        writer: DocumentStatusWriter | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._mappings = mappings
        self._writer = writer if writer is not None else SqlDocumentStatusWriter(session)
        self._clock = clock or SystemClock()

    def sync(
        self,
        entity_type: str,
        entity_id: str,
        outcome: SyncOutcome | str,
        *,
        actor_id: str | None = None,
        comment: str | None = None,
    ) -> bool:
        """Project ``outcome`` onto the document.  Returns True if written."""
        outcome_value = getattr(outcome, "value", outcome)
        mapping = self._mappings.get(entity_type)
        if mapping is None:
            logger.debug(
                "document_sync_unmapped",
                extra={"entity_type": entity_type, "outcome": outcome_value},
            )
            return False
        status_update = mapping.update_for(outcome_value)
        if status_update is None:
            logger.debug(
                "document_sync_outcome_unmapped",
                extra={"entity_type": entity_type, "outcome": outcome_value},
            )
            return False

        values = build_update_values(
            status_update,
            now=self._clock.now(),
            actor_id=actor_id,
            comment=comment,
        )
        try:
            with self.session.begin_nested():
                rows = self._writer.write(mapping, entity_id, values)
        except Exception as exc:
            failure = SyncFailureError(entity_type, entity_id, outcome_value, str(exc))
            failure.__cause__ = exc
            logger.error(
                "document_sync_failed",
                extra={"table": mapping.table},
                exc_info=failure,
            )
            return False

        if not rows:
            logger.warning(
                "document_sync_target_missing",
                extra={
                    "entity_type": entity_type,
                    "entity_id": entity_id,
                    "table": mapping.table,
                    "outcome": outcome_value,
                },
            )
        else:
            logger.info(
                "document_synced",
                extra={
                    "entity_type": entity_type,
                    "entity_id": entity_id,
                    "table": mapping.table,
                    "outcome": outcome_value,
                    "status_value": status_update.status_value,
                },
            )
        return bool(rows)
