"""
Configuration Loader (``approval_config.loader``).

Responsibility
--------------
Loads the approval engine YAML file and parses it into typed
``approval_config.schema`` dataclass instances.  Runtime callers go
through ``approval_config.get_active_config()``.

Architecture position
---------------------
**Config layer**.  Depends only on ``approval_config.schema``; it has no
dependency on the kernel.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Workflow steps are contiguous from 1 and use known approver types.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from approval_config.schema import (
    ApprovalEngineConfig,
    ApproverDef,
    DocumentStatusDef,
    EngineSettings,
    StatusUpdateDef,
    StepDef,
    WorkflowDef,
)

APPROVER_TYPES = frozenset({"user", "role", "requestor_manager"})
ESCALATION_ACTIONS = frozenset({"notify", "auto_approve", "auto_reject"})
OUTCOMES = frozenset({"approved", "rejected", "returned"})
TIMESTAMP_KINDS = frozenset({"date", "datetime"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_engine(data: dict[str, Any]) -> EngineSettings:
    interval = int(data.get("sweep_interval_seconds", 300))
    if interval <= 0:
        raise ValueError(f"sweep_interval_seconds must be positive, got {interval}")
    return EngineSettings(
        sweep_interval_seconds=interval,
        system_actor_label=data.get("system_actor_label", "system"),
    )


def parse_approver(data: dict[str, Any], where: str) -> ApproverDef:
    approver_type = data["type"]
    if approver_type not in APPROVER_TYPES:
        raise ValueError(
            f"{where}: unknown approver type {approver_type!r}; "
            f"expected one of {sorted(APPROVER_TYPES)}"
        )
    value = data.get("value")
    if approver_type != "requestor_manager" and not value:
        raise ValueError(f"{where}: approver type {approver_type!r} requires a value")
    return ApproverDef(type=approver_type, value=str(value) if value is not None else None)


def parse_step(data: dict[str, Any], where: str) -> StepDef:
    order = int(data["order"])
    step_where = f"{where} step {order}"
    escalation_action = data.get("escalation_action") or "notify"
    if escalation_action not in ESCALATION_ACTIONS:
        raise ValueError(f"{step_where}: unknown escalation_action {escalation_action!r}")
    timeout = data.get("timeout_hours")
    return StepDef(
        order=order,
        name=data["name"],
        approvers=tuple(parse_approver(a, step_where) for a in data.get("approvers", [])),
        timeout_hours=int(timeout) if timeout is not None else None,
        escalation_action=escalation_action,
    )


def parse_workflow(data: dict[str, Any]) -> WorkflowDef:
    """
    Parse a ``WorkflowDef`` from a dict.

    Raises:
        KeyError: if ``entity_type``, ``name`` or ``steps`` is missing.
        ValueError: if steps are empty or not contiguous from 1.
    """
    where = f"workflow {data.get('entity_type')}/{data.get('name')}"
    steps = tuple(
        sorted((parse_step(s, where) for s in data["steps"]), key=lambda s: s.order)
    )
    orders = [s.order for s in steps]
    if orders != list(range(1, len(orders) + 1)):
        raise ValueError(f"{where}: step orders must be contiguous from 1, got {orders}")
    return WorkflowDef(
        entity_type=data["entity_type"],
        name=data["name"],
        steps=steps,
        description=data.get("description"),
        is_active=bool(data.get("is_active", True)),
    )


def parse_status_update(data: dict[str, Any], where: str) -> StatusUpdateDef:
    kind = data.get("timestamp_kind", "datetime")
    if kind not in TIMESTAMP_KINDS:
        raise ValueError(f"{where}: unknown timestamp_kind {kind!r}")
    return StatusUpdateDef(
        status_field=data["status_field"],
        status_value=str(data["status_value"]),
        timestamp_field=data.get("timestamp_field"),
        timestamp_kind=kind,
        actor_field=data.get("actor_field"),
        comment_field=data.get("comment_field"),
        comment_prefix=data.get("comment_prefix", ""),
        clear_fields=tuple(data.get("clear_fields") or ()),
    )


def parse_document_status(entity_type: str, data: dict[str, Any]) -> DocumentStatusDef:
    outcomes: dict[str, StatusUpdateDef] = {}
    for outcome, update in (data.get("outcomes") or {}).items():
        if outcome not in OUTCOMES:
            raise ValueError(f"document_status {entity_type}: unknown outcome {outcome!r}")
        outcomes[outcome] = parse_status_update(update, f"document_status {entity_type}.{outcome}")
    return DocumentStatusDef(
        entity_type=entity_type,
        table=data["table"],
        key_column=data.get("key_column", "id"),
        outcomes=outcomes,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_config(data: dict[str, Any], source: str | None = None) -> ApprovalEngineConfig:
    """Parse a whole configuration document."""
    return ApprovalEngineConfig(
        engine=parse_engine(data.get("engine") or {}),
        entity_labels={str(k): str(v) for k, v in (data.get("entity_labels") or {}).items()},
        document_status=tuple(
            parse_document_status(entity_type, body)
            for entity_type, body in (data.get("document_status") or {}).items()
        ),
        workflows=tuple(parse_workflow(w) for w in data.get("workflows") or []),
        checksum=compute_checksum(data),
        source=source,
    )


def load_config(path: Path) -> ApprovalEngineConfig:
    """Load and parse the configuration file at ``path``."""
    return parse_config(load_yaml_file(path), source=str(path))
