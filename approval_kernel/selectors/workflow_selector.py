"""
Module: approval_kernel.selectors.workflow_selector
Responsibility: Read-only access to workflow definition versions.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Evaluation always goes through ``get_definition(workflow_id)`` so that a
      request re-reads the exact version frozen at submission, never the
      currently active one.

Failure modes:
    - WorkflowNotFoundError from get_definition for an unknown id.
    - NoActiveWorkflowError from get_active_definition when the entity type
      has no active version.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from approval_kernel.domain.workflow import WorkflowDefinition
from approval_kernel.exceptions import NoActiveWorkflowError, WorkflowNotFoundError
from approval_kernel.models.workflow import WorkflowDefinitionModel
from approval_kernel.selectors.base import BaseSelector


class WorkflowSelector(BaseSelector[WorkflowDefinitionModel]):
    """Queries over workflow definition versions."""

    def __init__(self, session: Session):
        super().__init__(session)

    def get_definition(self, workflow_id: UUID) -> WorkflowDefinition:
        """Load one version with its steps, approvers and conditions."""
        model = self.session.get(WorkflowDefinitionModel, workflow_id)
        if model is None:
            raise WorkflowNotFoundError(str(workflow_id))
        return model.to_dto()

    def find_active(self, entity_type: str) -> WorkflowDefinition | None:
        model = self.session.execute(
            select(WorkflowDefinitionModel)
            .where(WorkflowDefinitionModel.entity_type == entity_type)
            .where(WorkflowDefinitionModel.is_active.is_(True))
            .order_by(WorkflowDefinitionModel.version.desc())
        ).scalars().first()
        return model.to_dto() if model is not None else None

    def get_active_definition(self, entity_type: str) -> WorkflowDefinition:
        """The active version for an entity type.

        Raises:
            NoActiveWorkflowError: If none is active.
        """
        definition = self.find_active(entity_type)
        if definition is None:
            raise NoActiveWorkflowError(entity_type)
        return definition

    def list_versions(self, entity_type: str) -> list[WorkflowDefinition]:
        """Every version for an entity type, newest first."""
        models = self.session.execute(
            select(WorkflowDefinitionModel)
            .where(WorkflowDefinitionModel.entity_type == entity_type)
            .order_by(WorkflowDefinitionModel.version.desc())
        ).scalars().all()
        return [m.to_dto() for m in models]

    def latest_version_number(self, entity_type: str) -> int:
        """Highest version number for an entity type (0 if none exists)."""
        latest = self.session.execute(
            select(func.max(WorkflowDefinitionModel.version))
            .where(WorkflowDefinitionModel.entity_type == entity_type)
        ).scalar_one()
        return latest or 0
