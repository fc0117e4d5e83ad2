"""
Workflow definition file schema.

Defines the human-authored, reviewable source artifact for approval
workflows.  YAML documents are parsed into these types by the loader and
installed into the database by the installer, which goes through the
administration service like any other edit.

Key distinction:
  WorkflowDraft       = source artifact (file-authored, not yet a version)
  WorkflowDefinition  = runtime artifact (a stored, numbered version)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

from approval_kernel.domain.workflow import (
    ApprovalType,
    ApproverSpec,
    EscalationAction,
    StepCondition,
)


@dataclass(frozen=True)
class StepDraft:
    """One step as written in a workflow file."""

    step_name: str
    approval_type: ApprovalType = ApprovalType.ANY
    required_percentage: Decimal | None = None
    can_skip: bool = False
    timeout_hours: int | None = None
    escalation_action: EscalationAction = EscalationAction.NOTIFY
    escalation_role: str | None = None
    approvers: tuple[ApproverSpec, ...] = ()
    conditions: tuple[StepCondition, ...] = ()


@dataclass(frozen=True)
class WorkflowDraft:
    """A workflow for one entity type, steps in file order."""

    entity_type: str
    name: str
    description: str = ""
    activate: bool = False
    steps: tuple[StepDraft, ...] = ()


@dataclass(frozen=True)
class WorkflowDocument:
    """Every workflow parsed from one file, with its content checksum."""

    source: Path
    checksum: str
    workflows: tuple[WorkflowDraft, ...] = field(default=())

    def for_entity_type(self, entity_type: str) -> WorkflowDraft | None:
        for draft in self.workflows:
            if draft.entity_type == entity_type:
                return draft
        return None
