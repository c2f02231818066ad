"""
Structured logging as the engine uses it.

Verifies:
- A sweep's sweep_id stays bound while a request inside it binds its own
  request_id, and both unwind in order.
- Kernel exceptions logged with exc_info become exc_* fields.
- Engine operations emit JSON records carrying their bound context.
"""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from approval_kernel.exceptions import StaleApprovalStateError, UnauthorizedApproverError
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture
def json_stream():
    """Route approval_kernel logs into a fresh JSON stream for one test."""
    reset_logging()
    stream = StringIO()
    configure_logging(level=logging.DEBUG, stream=stream)

    def _records():
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield _records
    reset_logging()
    configure_logging(level=logging.DEBUG)


class TestNestedContext:

    def test_request_binds_inside_sweep(self, json_stream):
        logger = get_logger("batch.escalation")
        with LogContext.bind(sweep_id="sweep-1"):
            logger.info("escalation_sweep_started")
            with LogContext.bind(request_id="req-1", entity_type="purchase_order"):
                logger.info("request_escalated")
            logger.info("escalation_sweep_completed")
        logger.info("after_sweep")

        started, escalated, completed, after = json_stream()
        assert started["sweep_id"] == "sweep-1"
        assert "request_id" not in started
        assert escalated["sweep_id"] == "sweep-1"
        assert escalated["request_id"] == "req-1"
        assert escalated["entity_type"] == "purchase_order"
        assert completed["sweep_id"] == "sweep-1"
        assert "request_id" not in completed
        assert "sweep_id" not in after

    def test_inner_bind_overrides_then_restores(self):
        with LogContext.bind(request_id="outer", actor_id="U1"):
            with LogContext.bind(request_id="inner"):
                assert LogContext.get_all() == {"request_id": "inner", "actor_id": "U1"}
            assert LogContext.get_all() == {"request_id": "outer", "actor_id": "U1"}
        assert LogContext.get_all() == {}

    def test_none_values_left_unbound(self):
        with LogContext.bind(request_id="r", actor_id=None):
            assert LogContext.get_all() == {"request_id": "r"}

    def test_values_stringified(self):
        request_id = uuid4()
        with LogContext.bind(request_id=request_id):
            assert LogContext.get_all()["request_id"] == str(request_id)

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            with LogContext.bind(ledger_id="x"):
                pass

    def test_context_restored_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(sweep_id="s"):
                raise RuntimeError("boom")
        assert LogContext.get_all() == {}


class TestExceptionFields:

    def _log(self, exc):
        try:
            raise exc
        except Exception:
            get_logger("services.request_tracker").warning("action_failed", exc_info=True)

    def test_unauthorized_approver(self, json_stream):
        self._log(UnauthorizedApproverError("req-1", "U9", "Buyer Review", "role buyer"))

        (record,) = json_stream()
        assert record["exc_type"] == "UnauthorizedApproverError"
        assert record["exc_code"] == "UNAUTHORIZED_APPROVER"
        assert record["exc_request_id"] == "req-1"
        assert record["exc_user_id"] == "U9"
        assert record["exc_step_name"] == "Buyer Review"
        assert record["exc_eligible_approvers"] == "role buyer"
        assert "Traceback" in record["traceback"]

    def test_stale_state(self, json_stream):
        with LogContext.bind(request_id="req-2"):
            self._log(StaleApprovalStateError("req-2", 1))

        (record,) = json_stream()
        assert record["exc_code"] == "STALE_APPROVAL_STATE"
        assert record["exc_expected_step_order"] == 1
        assert record["request_id"] == "req-2"

    def test_plain_exception_has_no_code(self, json_stream):
        self._log(ValueError("bad"))

        (record,) = json_stream()
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "bad"
        assert "exc_code" not in record


class TestFormatter:

    def test_extra_values_serialized(self, json_stream):
        workflow_id = uuid4()
        get_logger("services.workflow_store").info(
            "workflow_registered", extra={"workflow_id": workflow_id, "step_count": 2},
        )

        (record,) = json_stream()
        assert record["logger"] == "approval_kernel.services.workflow_store"
        assert record["level"] == "INFO"
        assert record["workflow_id"] == str(workflow_id)
        assert record["step_count"] == 2

    def test_bound_context_wins_over_extra(self):
        stream = StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(StructuredFormatter())
        logger = logging.getLogger("approval_kernel.test_precedence")
        logger.addHandler(handler)
        try:
            with LogContext.bind(entity_id="PO-1"):
                logger.warning("document_sync_target_missing", extra={"entity_id": "other"})
        finally:
            logger.removeHandler(handler)

        assert json.loads(stream.getvalue())["entity_id"] == "PO-1"

    def test_configure_is_idempotent(self, json_stream):
        configure_logging(stream=StringIO())
        assert len(logging.getLogger("approval_kernel").handlers) == 1


class TestEngineRecords:

    def test_act_records_carry_actor(self, json_stream, approval_engine, po_workflow):
        request = approval_engine.submit(
            "purchase_order", "PO-LOG", "PO-LOG", po_workflow.workflow_id, "R1",
        )
        approval_engine.act(request.request_id, "U1", {"buyer"}, "approve")

        transitions = [r for r in json_stream() if r["message"] == "approval_transition_applied"]
        assert transitions
        assert transitions[0]["request_id"] == str(request.request_id)
        assert transitions[0]["actor_id"] == "U1"
        assert transitions[0]["entity_id"] == "PO-LOG"
