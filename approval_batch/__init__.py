"""
approval_batch -- Escalation sweep for overdue approval steps.

Evaluates every pending approval request against its current step's SLA
and applies the step's escalation policy (notify, auto_approve,
auto_reject) through the request tracker.  Runs on a fixed interval,
either driven by an external cron via ``run_sweep`` / the CLI, or by the
in-process ``EscalationScheduler`` loop.

Architecture:
    approval_batch/ is a top-level package.  Nothing in approval_kernel/
    imports from approval_batch.

Invariants:
    - Deadline evaluation is pure (``approval_batch.domain.escalation``).
    - All timestamps come from the injected Clock or the ``now`` argument.
    - One transaction per request; a lost race is skipped, not retried.
    - Graceful shutdown: the current request finishes before the loop exits.
"""
