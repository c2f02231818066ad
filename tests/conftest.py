"""
Pytest fixtures for the approval engine test suite.

Provides:
- A fresh database per test (SQLite file under tmp_path by default)
- Document tables the status synchronizer writes to
- Deterministic clock, in-memory user directory, engine facade
- Workflow and document factory fixtures
- Captured structured logs

Environment Variables:
- DATABASE_URL: run against another database (e.g. PostgreSQL) instead of
  the per-test SQLite file.  All approval and document tables are dropped
  and recreated around every test.
"""

import json
import logging
import os
from datetime import datetime, timezone
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy import Column, Date, DateTime, MetaData, String, Table, Text, insert, select
from sqlalchemy.orm import Session

from approval_config import get_active_config
from approval_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.domain.directory import StaticUserDirectory
from approval_kernel.domain.workflow import (
    EscalationAction,
    RoleApprover,
    StepSpec,
    WorkflowSpec,
)
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from approval_services import ApprovalEngine

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture approval_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, tracker):
            tracker.submit(...)
            logs = captured_logs()
            assert any(r["message"] == "approval_request_submitted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("approval_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Document tables (owned by the host application, not the engine)
# =============================================================================

document_metadata = MetaData()

purchase_requisitions = Table(
    "purchase_requisitions",
    document_metadata,
    Column("id", String(100), primary_key=True),
    Column("status", String(30), nullable=False),
    Column("approved_date", Date, nullable=True),
    Column("approved_by", String(100), nullable=True),
    Column("notes", Text, nullable=True),
)

purchase_orders = Table(
    "purchase_orders",
    document_metadata,
    Column("id", String(100), primary_key=True),
    Column("status", String(30), nullable=False),
    Column("approved_date", DateTime(timezone=True), nullable=True),
    Column("approved_by", String(100), nullable=True),
    Column("notes", Text, nullable=True),
)

suppliers = Table(
    "suppliers",
    document_metadata,
    Column("id", String(100), primary_key=True),
    Column("status", String(30), nullable=False),
)

inbound_deliveries = Table(
    "inbound_deliveries",
    document_metadata,
    Column("id", String(100), primary_key=True),
    Column("status", String(30), nullable=False),
)

DOCUMENT_TABLES = {
    t.name: t
    for t in (purchase_requisitions, purchase_orders, suppliers, inbound_deliveries)
}


# =============================================================================
# Database
# =============================================================================


def get_database_url(tmp_path) -> str:
    """DATABASE_URL from the environment, else a SQLite file for this test."""
    return os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'approvals.db'}"


@pytest.fixture
def db_engine(tmp_path):
    """Engine with every approval and document table freshly created."""
    eng = init_engine_from_url(
        get_database_url(tmp_path),
        echo=False,
        pool_size=10,
        max_overflow=10,
        pool_timeout=10,
    )
    document_metadata.drop_all(eng)
    drop_tables(eng)
    create_tables(eng)
    document_metadata.create_all(eng)
    yield eng
    document_metadata.drop_all(eng)
    drop_tables(eng)
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """A session for direct service tests.  Tests commit explicitly."""
    s = session_factory()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Engine wiring
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(T0)


@pytest.fixture
def directory():
    """Buyers U1 and U3, finance manager U2, warehouse W1, compliance C1.

    R1 reports to M1.
    """
    return StaticUserDirectory(
        roles={
            "U1": {"buyer"},
            "U2": {"finance_manager"},
            "U3": {"buyer"},
            "W1": {"warehouse_manager"},
            "C1": {"compliance_officer"},
            "P1": {"procurement_manager"},
        },
        managers={"R1": "M1"},
    )


@pytest.fixture
def approval_config():
    return get_active_config()


@pytest.fixture
def approval_engine(session_factory, directory, approval_config, deterministic_clock):
    return ApprovalEngine(
        session_factory,
        directory=directory,
        config=approval_config,
        clock=deterministic_clock,
    )


@pytest.fixture
def uow(approval_engine, session):
    """Kernel services bound to the test session."""
    return approval_engine.build_unit_of_work(session)


@pytest.fixture
def tracker(uow):
    return uow.tracker


@pytest.fixture
def workflow_store(uow):
    return uow.workflows


# =============================================================================
# Factories
# =============================================================================


def two_step_spec(
    entity_type: str = "purchase_order",
    timeout_hours: int | None = None,
    escalation_action: EscalationAction = EscalationAction.NOTIFY,
) -> WorkflowSpec:
    return WorkflowSpec(
        entity_type=entity_type,
        name="PO Approval",
        steps=(
            StepSpec(
                step_order=1,
                step_name="Buyer Review",
                approvers=(RoleApprover("buyer"),),
                timeout_hours=timeout_hours,
                escalation_action=escalation_action,
            ),
            StepSpec(
                step_order=2,
                step_name="Finance Approval",
                approvers=(RoleApprover("finance_manager"),),
            ),
        ),
    )


@pytest.fixture
def make_workflow(approval_engine):
    """Register a workflow through the engine (committed).

    Defaults to the two-step buyer -> finance_manager purchase order flow.
    """

    def _make(spec: WorkflowSpec | None = None, **kwargs):
        return approval_engine.register_workflow(spec or two_step_spec(**kwargs))

    return _make


@pytest.fixture
def po_workflow(make_workflow):
    return make_workflow()


@pytest.fixture
def insert_document(db_engine):
    """Insert a row into a document table (committed)."""

    def _insert(table_name: str, doc_id: str, status: str = "pending_approval", **values):
        with db_engine.begin() as conn:
            conn.execute(
                insert(DOCUMENT_TABLES[table_name]).values(id=doc_id, status=status, **values)
            )
        return doc_id

    return _insert


@pytest.fixture
def read_document(db_engine):
    """Read a document row as a dict, or None."""

    def _read(table_name: str, doc_id: str) -> dict | None:
        table = DOCUMENT_TABLES[table_name]
        with db_engine.connect() as conn:
            row = conn.execute(select(table).where(table.c.id == doc_id)).mappings().first()
        return dict(row) if row is not None else None

    return _read


class RecordingWriter:
    """DocumentStatusWriter that records calls instead of writing."""

    def __init__(self, rowcount: int = 1, error: Exception | None = None):
        self.calls: list[tuple[str, str, dict]] = []
        self.rowcount = rowcount
        self.error = error

    def write(self, mapping, entity_id, values):
        self.calls.append((mapping.entity_type, entity_id, dict(values)))
        if self.error is not None:
            raise self.error
        return self.rowcount


@pytest.fixture
def recording_writer():
    return RecordingWriter()


@pytest.fixture
def recording_engine(session_factory, directory, approval_config, deterministic_clock, recording_writer):
    """Engine whose document writes go to ``recording_writer``."""
    return ApprovalEngine(
        session_factory,
        directory=directory,
        config=approval_config,
        clock=deterministic_clock,
        document_writer_factory=lambda session: recording_writer,
    )


@pytest.fixture
def spec_factory():
    """``two_step_spec`` as a fixture, for tests that build variants."""
    return two_step_spec


@pytest.fixture
def writer_factory():
    """Build additional ``RecordingWriter`` instances."""
    return RecordingWriter
