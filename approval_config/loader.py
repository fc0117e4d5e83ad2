"""
Workflow Definition Loader (``approval_config.loader``).

Responsibility
--------------
Loads YAML workflow files and parses them into typed
``approval_config.schema`` dataclass instances.  Parsing checks shape only;
semantic validation (dense orders, percentage ranges, condition syntax)
runs in ``approval_engines.validation`` when a version is activated.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Imports kernel domain types;
the kernel never imports this package.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  parsed file content, so an operator can tell whether a file changed
  since it was last installed.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown approval type / escalation action / approver type, or the same
  entity type twice in one file  -> ``ValueError``.

Example document::

    workflows:
      - entity_type: purchase_requisition
        name: Purchase requisition approval
        activate: true
        steps:
          - step_name: Manager review
            approvers:
              - {type: requestor_manager}
          - step_name: CFO sign-off
            timeout_hours: 48
            escalation_action: escalate_to_role
            escalation_role: controller
            approvers:
              - {type: role, value: cfo}
            conditions:
              - {field: total_amount, operator: gt, value: 10000}
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from approval_config.schema import StepDraft, WorkflowDocument, WorkflowDraft
from approval_kernel.domain.workflow import (
    ApprovalType,
    ApproverSpec,
    ApproverType,
    ConditionAction,
    EscalationAction,
    StepCondition,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def parse_approver(data: dict[str, Any]) -> ApproverSpec:
    """Parse an ApproverSpec from ``{type: ..., value: ...}``."""
    approver_type = ApproverType(data["type"])
    value = data.get("value")
    return ApproverSpec(
        approver_type=approver_type,
        approver_value=str(value) if value is not None else None,
    )


def parse_condition(data: dict[str, Any], order: int = 0) -> StepCondition:
    """
    Parse a StepCondition.

    ``field`` is accepted for ``field_path`` and ``route_to`` for
    ``route_to_role``.  Operator and action stay raw strings; an unknown
    code is reported when the version is validated.
    """
    field_path = data["field_path"] if "field_path" in data else data["field"]
    route_to_role = data.get("route_to_role", data.get("route_to"))
    return StepCondition(
        field_path=str(field_path),
        operator=str(data["operator"]),
        value=data.get("value"),
        action=str(data.get("action", ConditionAction.REQUIRE.value)),
        route_to_role=route_to_role,
        condition_order=order,
    )


def parse_step(data: dict[str, Any]) -> StepDraft:
    """
    Parse a StepDraft.

    Raises:
        KeyError: if ``step_name`` is missing.
        ValueError: for an unknown approval type or escalation action.
    """
    percentage = data.get("required_percentage")
    timeout = data.get("timeout_hours")
    return StepDraft(
        step_name=data["step_name"],
        approval_type=ApprovalType(data.get("approval_type", ApprovalType.ANY.value)),
        required_percentage=Decimal(str(percentage)) if percentage is not None else None,
        can_skip=bool(data.get("can_skip", False)),
        timeout_hours=int(timeout) if timeout is not None else None,
        escalation_action=EscalationAction(
            data.get("escalation_action", EscalationAction.NOTIFY.value)
        ),
        escalation_role=data.get("escalation_role"),
        approvers=tuple(parse_approver(a) for a in data.get("approvers", [])),
        conditions=tuple(
            parse_condition(c, order) for order, c in enumerate(data.get("conditions", []))
        ),
    )


def parse_workflow(data: dict[str, Any]) -> WorkflowDraft:
    """Parse a WorkflowDraft; ``entity_type`` and ``name`` are required."""
    return WorkflowDraft(
        entity_type=data["entity_type"],
        name=data["name"],
        description=data.get("description", "") or "",
        activate=bool(data.get("activate", False)),
        steps=tuple(parse_step(s) for s in data.get("steps", [])),
    )


def load_workflow_file(path: Path) -> WorkflowDocument:
    """
    Load and parse every workflow in a YAML file.

    Raises:
        KeyError: if the ``workflows`` key or a required field is missing.
        ValueError: if an entity type appears twice.
    """
    path = Path(path)
    data = load_yaml_file(path)
    workflows = tuple(parse_workflow(w) for w in data["workflows"])

    seen: set[str] = set()
    for draft in workflows:
        if draft.entity_type in seen:
            raise ValueError(f"{path}: entity_type {draft.entity_type!r} defined twice")
        seen.add(draft.entity_type)

    return WorkflowDocument(source=path, checksum=compute_checksum(data), workflows=workflows)


def load_directory(config_dir: Path) -> list[WorkflowDocument]:
    """Load every ``*.yaml`` / ``*.yml`` file in a directory, sorted by name."""
    config_dir = Path(config_dir)
    paths = sorted([*config_dir.glob("*.yaml"), *config_dir.glob("*.yml")])
    return [load_workflow_file(p) for p in paths]


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
