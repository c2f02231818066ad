"""
approval_batch.domain -- Pure escalation evaluation.

ZERO I/O.  All types are frozen dataclasses.
"""

from approval_batch.domain.escalation import (
    EscalationDecision,
    compute_deadline,
    escalation_comment,
    evaluate_escalation,
)

__all__ = [
    "EscalationDecision",
    "compute_deadline",
    "escalation_comment",
    "evaluate_escalation",
]
