"""
Module: approval_kernel.db.types
Responsibility: Column types shared by every approval model.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/,
    selectors/, or outer layers.

Invariants enforced:
    - Timestamps are always timezone-aware UTC on the Python side, on every
      backend.  SQLite has no timestamp-with-time-zone type and hands back
      naive values; UTCDateTime re-attaches UTC on load and rejects naive
      datetimes on bind, so SLA arithmetic never mixes naive and aware values.

Failure modes:
    - ValueError on binding a naive datetime.
"""

from datetime import datetime, timezone
from typing import Annotated

from sqlalchemy import DateTime, String, Text
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    DateTime(timezone=True) that always round-trips as aware UTC.

    Guarantees:
        - process_bind_param: aware datetime -> UTC datetime.
        - process_result_value: naive (SQLite) or aware -> aware UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# Entity type discriminators, e.g. "purchase_order"
EntityType = Annotated[str, String(100)]

# External document identifiers (stored as text; documents own their key type)
EntityRef = Annotated[str, String(100)]

# User ids supplied by the caller's identity provider
UserRef = Annotated[str, String(100)]

# Free text comments and messages
LongText = Annotated[str, Text]

UTCTimestamp = Annotated[datetime, UTCDateTime()]
