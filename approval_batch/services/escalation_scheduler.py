"""
EscalationScheduler -- periodic sweep over pending approval requests.

Contract:
    ``run_sweep(now)`` loads every pending request, evaluates its current
    step's SLA with the pure ``evaluate_escalation()``, and applies the
    step's escalation policy through the ``RequestTracker``:

        auto_approve -> system ``approve`` transition
        auto_reject  -> system ``reject`` transition
        notify       -> ``escalate`` action + reminders, no state change

    ``tick()`` / ``start()`` / ``stop()`` run the sweep on an in-process
    interval for deployments without an external cron.

Architecture: approval_batch/services.  Uses approval_batch.domain for
    pure evaluation and approval_kernel.services for transitions.

Invariants enforced:
    - All timestamps from the injected Clock or the ``now`` argument.
    - One session and transaction per request: a failure on one request
      never affects another.
    - A transition lost to a concurrent caller (InvalidTransitionError)
      is skipped, never retried within the sweep.  Re-running a sweep is
      safe: auto transitions apply at most once; ``notify`` re-reminds on
      every sweep while the request stays overdue.
    - Graceful shutdown: the stop signal is checked between requests.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.exceptions import InvalidTransitionError
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.services.request_tracker import RequestTracker

from approval_batch.domain.escalation import evaluate_escalation

logger = get_logger("batch.escalation")


@dataclass(frozen=True)
class SweepResult:
    """Summary of one sweep, for observability."""

    sweep_id: UUID
    evaluated_at: datetime
    processed_count: int
    touched_request_ids: tuple[UUID, ...]
    skipped_count: int = 0
    failed_request_ids: tuple[UUID, ...] = ()

    def to_dict(self) -> dict:
        return {
            "sweep_id": str(self.sweep_id),
            "evaluated_at": self.evaluated_at.isoformat(),
            "processed_count": self.processed_count,
            "touched_request_ids": [str(r) for r in self.touched_request_ids],
            "skipped_count": self.skipped_count,
            "failed_request_ids": [str(r) for r in self.failed_request_ids],
        }


_TOUCHED = "touched"
_SKIPPED = "skipped"
_FAILED = "failed"


class EscalationScheduler:
    """Escalation sweep plus an optional background polling loop.

    Contract:
        - ``run_sweep()`` evaluates all pending requests once.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler (no leader election).  Overlapping
          sweeps are safe because every transition is compare-and-set.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        tracker_factory: Callable[[Session], RequestTracker],
        clock: Clock | None = None,
        sweep_interval_seconds: int = 300,
    ):
        self._session_factory = session_factory
        self._tracker_factory = tracker_factory
        self._clock = clock or SystemClock()
        self._sweep_interval = sweep_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run_sweep(self, now: datetime | None = None) -> SweepResult:
        """Evaluate every pending request at ``now`` (default: clock time).

        Raises ValueError for a naive ``now``: deadlines are aware, so a
        naive time could not be compared against any of them.
        """
        now = now or self._clock.now()
        if now.tzinfo is None:
            raise ValueError("run_sweep requires a timezone-aware datetime")
        sweep_id = uuid4()
        touched: list[UUID] = []
        failed: list[UUID] = []
        skipped = 0

        with LogContext.bind(sweep_id=str(sweep_id)):
            pending = self._pending_request_ids()
            logger.info(
                "escalation_sweep_started",
                extra={"pending_count": len(pending), "evaluated_at": now},
            )

            for request_id in pending:
                if self._stop_event.is_set():
                    break
                outcome = self._process_request(request_id, now)
                if outcome == _TOUCHED:
                    touched.append(request_id)
                elif outcome == _FAILED:
                    failed.append(request_id)
                else:
                    skipped += 1

            result = SweepResult(
                sweep_id=sweep_id,
                evaluated_at=now,
                processed_count=len(touched),
                touched_request_ids=tuple(touched),
                skipped_count=skipped,
                failed_request_ids=tuple(failed),
            )
            logger.info(
                "escalation_sweep_completed",
                extra={
                    "processed_count": result.processed_count,
                    "skipped_count": result.skipped_count,
                    "failed_count": len(result.failed_request_ids),
                    "touched_request_ids": [str(r) for r in touched],
                },
            )
        return result

    def tick(self) -> int:
        """Run one sweep at clock time.  Returns the number of requests touched."""
        try:
            return self.run_sweep().processed_count
        except Exception:
            logger.exception("escalation_tick_failed")
            return 0

    def start(self) -> None:
        """Start the sweep loop in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="approval-escalation",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "escalation_scheduler_started",
            extra={"sweep_interval": self._sweep_interval},
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current request to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("escalation_scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._sweep_interval)

    def _pending_request_ids(self) -> list[UUID]:
        session = self._session_factory()
        try:
            return self._tracker_factory(session).pending_request_ids()
        finally:
            session.close()

    def _process_request(self, request_id: UUID, now: datetime) -> str:
        """Evaluate and escalate one request in its own transaction."""
        session = self._session_factory()
        try:
            tracker = self._tracker_factory(session)
            request = tracker.get_request(request_id)
            if not request.is_pending:
                session.rollback()
                return _SKIPPED
            step = tracker.current_step(request)
            decision = evaluate_escalation(request, step, now)
            if decision is None:
                session.rollback()
                return _SKIPPED

            transition = decision.transition_action
            if transition is not None:
                tracker.apply_system_transition(
                    request_id, transition, decision.comment, decision.step_order, now,
                )
            else:
                tracker.record_escalation(
                    request_id, decision.comment, decision.step_order, now,
                )
            session.commit()

            logger.info(
                "request_escalated",
                extra={
                    "request_id": str(request_id),
                    "escalation_action": decision.action.value,
                    "step_order": decision.step_order,
                    "deadline": decision.deadline,
                },
            )
            return _TOUCHED

        except InvalidTransitionError as exc:
            session.rollback()
            logger.info(
                "escalation_skipped_concurrent_transition",
                extra={"request_id": str(request_id), "reason": exc.code},
            )
            return _SKIPPED
        except Exception:
            session.rollback()
            logger.exception(
                "escalation_request_failed",
                extra={"request_id": str(request_id)},
            )
            return _FAILED
        finally:
            session.close()
