"""
ApprovalEngineConfig schema.

Defines the human-authored, reviewable configuration artifact.  YAML is
parsed into these types by the loader and translated into kernel domain
objects by the bridges.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Engine settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineSettings:
    """Runtime settings for the engine and escalation sweep."""

    sweep_interval_seconds: int = 300
    system_actor_label: str = "system"


# ---------------------------------------------------------------------------
# Workflows
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApproverDef:
    """One approver descriptor as authored."""

    type: str
    value: str | None = None


@dataclass(frozen=True)
class StepDef:
    order: int
    name: str
    approvers: tuple[ApproverDef, ...] = ()
    timeout_hours: int | None = None
    escalation_action: str = "notify"


@dataclass(frozen=True)
class WorkflowDef:
    """Seed workflow definition for one entity type."""

    entity_type: str
    name: str
    steps: tuple[StepDef, ...]
    description: str | None = None
    is_active: bool = True


# ---------------------------------------------------------------------------
# Document status projection
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StatusUpdateDef:
    status_field: str
    status_value: str
    timestamp_field: str | None = None
    timestamp_kind: str = "datetime"
    actor_field: str | None = None
    comment_field: str | None = None
    comment_prefix: str = ""
    clear_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class DocumentStatusDef:
    """Outcome -> field writes for one entity type's document table."""

    entity_type: str
    table: str
    key_column: str = "id"
    outcomes: dict[str, StatusUpdateDef] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApprovalEngineConfig:
    """Complete parsed configuration.

    ``checksum`` is the SHA-256 of the canonical JSON form of the parsed
    YAML, identifying exactly which configuration governed a run.
    """

    engine: EngineSettings
    entity_labels: dict[str, str] = field(default_factory=dict)
    document_status: tuple[DocumentStatusDef, ...] = ()
    workflows: tuple[WorkflowDef, ...] = ()
    checksum: str = ""
    source: str | None = None

    def workflow_for(self, entity_type: str) -> WorkflowDef | None:
        """First configured workflow for ``entity_type``, or None."""
        for workflow in self.workflows:
            if workflow.entity_type == entity_type:
                return workflow
        return None
