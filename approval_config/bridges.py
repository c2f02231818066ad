"""
Config -> Kernel Bridges.

Functions that convert ``ApprovalEngineConfig`` artifacts into kernel
domain objects.  These live in approval_config (the producer) because the
kernel must NEVER import approval_config.

Usage:
    from approval_config.bridges import build_document_mappings, build_workflow_specs

    config = get_active_config()
    mappings = build_document_mappings(config)
    specs = build_workflow_specs(config)
"""

from __future__ import annotations

from approval_config.schema import ApprovalEngineConfig, StatusUpdateDef
from approval_kernel.domain.document_status import (
    DocumentStatusMapping,
    StatusUpdate,
    SyncOutcome,
    TimestampKind,
)
from approval_kernel.domain.workflow import (
    EscalationAction,
    StepSpec,
    WorkflowSpec,
    approver_from_row,
)


def _status_update(definition: StatusUpdateDef) -> StatusUpdate:
    return StatusUpdate(
        status_field=definition.status_field,
        status_value=definition.status_value,
        timestamp_field=definition.timestamp_field,
        timestamp_kind=TimestampKind(definition.timestamp_kind),
        actor_field=definition.actor_field,
        comment_field=definition.comment_field,
        comment_prefix=definition.comment_prefix,
        clear_fields=definition.clear_fields,
    )


def build_document_mappings(config: ApprovalEngineConfig) -> dict[str, DocumentStatusMapping]:
    """entity_type -> DocumentStatusMapping for the synchronizer."""
    return {
        d.entity_type: DocumentStatusMapping(
            entity_type=d.entity_type,
            table=d.table,
            key_column=d.key_column,
            outcomes={
                SyncOutcome(outcome): _status_update(update)
                for outcome, update in d.outcomes.items()
            },
        )
        for d in config.document_status
    }


def build_workflow_specs(config: ApprovalEngineConfig) -> list[WorkflowSpec]:
    """Seed workflow specs, ready for ``WorkflowStore.register``."""
    specs = []
    for workflow in config.workflows:
        ref = f"{workflow.entity_type}/{workflow.name}"
        specs.append(
            WorkflowSpec(
                entity_type=workflow.entity_type,
                name=workflow.name,
                description=workflow.description,
                is_active=workflow.is_active,
                steps=tuple(
                    StepSpec(
                        step_order=step.order,
                        step_name=step.name,
                        approvers=tuple(
                            approver_from_row(a.type, a.value, workflow_ref=ref)
                            for a in step.approvers
                        ),
                        timeout_hours=step.timeout_hours,
                        escalation_action=EscalationAction(step.escalation_action),
                    )
                    for step in workflow.steps
                ),
            )
        )
    return specs
