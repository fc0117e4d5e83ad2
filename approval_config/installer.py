"""
Workflow installer (``approval_config.installer``).

Turns parsed ``WorkflowDraft`` objects into stored workflow versions by
driving ``WorkflowAdminService`` -- the same path an administrator's edits
take, so validation and activation rules apply unchanged.  A draft whose
content matches the currently active version is reported as unchanged
and not re-installed.

The caller owns the transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4

from sqlalchemy.orm import Session

from approval_config.schema import WorkflowDocument, WorkflowDraft
from approval_kernel.domain.clock import Clock
from approval_kernel.domain.workflow import WorkflowDefinition, WorkflowStep
from approval_kernel.logging_config import get_logger
from approval_kernel.selectors.workflow_selector import WorkflowSelector
from approval_kernel.services.workflow_admin_service import (
    WorkflowAdminService,
    compute_definition_hash,
)

logger = get_logger("config.installer")


@dataclass(frozen=True)
class InstallResult:
    entity_type: str
    definition: WorkflowDefinition
    created: bool


def draft_to_definition(draft: WorkflowDraft) -> WorkflowDefinition:
    """An unsaved definition with the draft's content, for hashing."""
    return WorkflowDefinition(
        workflow_id=uuid4(),
        entity_type=draft.entity_type,
        name=draft.name,
        version=0,
        description=draft.description,
        steps=tuple(
            WorkflowStep(
                step_id=uuid4(),
                step_order=order,
                step_name=s.step_name,
                approval_type=s.approval_type,
                required_percentage=s.required_percentage,
                can_skip=s.can_skip,
                timeout_hours=s.timeout_hours,
                escalation_action=s.escalation_action,
                escalation_role=s.escalation_role,
                approvers=s.approvers,
                conditions=s.conditions,
            )
            for order, s in enumerate(draft.steps, start=1)
        ),
    )


def install_draft(
    session: Session,
    draft: WorkflowDraft,
    created_by: str | None = None,
    clock: Clock | None = None,
) -> InstallResult:
    """Create a new version from ``draft``, activating it if the draft asks.

    Raises:
        ConfigurationError: If the draft is marked ``activate`` and does
            not validate.
    """
    if draft.activate:
        active = WorkflowSelector(session).find_active(draft.entity_type)
        if active is not None and active.definition_hash == compute_definition_hash(
            draft_to_definition(draft)
        ):
            logger.info(
                "workflow_install_unchanged",
                extra={"entity_type": draft.entity_type, "version": active.version},
            )
            return InstallResult(draft.entity_type, active, created=False)

    admin = WorkflowAdminService(session, clock=clock)
    definition = admin.create_workflow(
        draft.entity_type, draft.name, draft.description, created_by=created_by,
    )
    for step in draft.steps:
        admin.add_step(
            definition.workflow_id,
            step.step_name,
            approval_type=step.approval_type,
            required_percentage=step.required_percentage,
            can_skip=step.can_skip,
            timeout_hours=step.timeout_hours,
            escalation_action=step.escalation_action,
            escalation_role=step.escalation_role,
            approvers=step.approvers,
            conditions=step.conditions,
        )
    if draft.activate:
        definition = admin.activate(definition.workflow_id)
    else:
        definition = WorkflowSelector(session).get_definition(definition.workflow_id)

    logger.info(
        "workflow_installed",
        extra={
            "entity_type": draft.entity_type,
            "version": definition.version,
            "steps": len(definition.steps),
            "active": definition.is_active,
        },
    )
    return InstallResult(draft.entity_type, definition, created=True)


def install_document(
    session: Session,
    document: WorkflowDocument,
    created_by: str | None = None,
    clock: Clock | None = None,
) -> list[InstallResult]:
    logger.info(
        "workflow_document_install_started",
        extra={"source": str(document.source), "checksum": document.checksum},
    )
    return [
        install_draft(session, draft, created_by=created_by, clock=clock)
        for draft in document.workflows
    ]
