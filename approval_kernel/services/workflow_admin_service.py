"""
approval_kernel.services.workflow_admin_service -- Workflow definition administration.

Responsibility:
    Create and edit workflow versions, their steps, approver specs and
    conditions; activate and deactivate versions; clone a version into a new
    draft.

Architecture position:
    Kernel > Services.  May import from domain/, models/, selectors/, db/,
    utils/ and the pure validation engine.

Invariants enforced:
    - A version referenced by any request is immutable: every content edit
      raises WorkflowVersionInUseError.  Edits go to ``clone_version``.
    - Exactly one active version per entity type: ``activate`` deactivates
      every sibling in the same transaction, and a partial unique index
      rejects a second active row from a concurrent activation.
    - Only valid definitions are activated; an edit to an active version
      is re-validated before it is flushed.
    - Step orders stay dense (1..N) across insert and removal.
    - ``definition_hash`` fingerprints the step chain at activation.

Failure modes:
    - WorkflowNotFoundError / StepNotFoundError for unknown ids.
    - WorkflowVersionInUseError on edits to a referenced version.
    - ConfigurationError subclasses from validation on activate.
    - InvalidStepConfigurationError for unknown approval types, escalation
      actions or malformed percentages.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Iterable
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from approval_engines.validation import validate_definition
from approval_kernel.db.types import to_json_value
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.workflow import (
    ApprovalType,
    ApproverSpec,
    ApproverType,
    EscalationAction,
    StepCondition,
    WorkflowDefinition,
    WorkflowStep,
)
from approval_kernel.exceptions import (
    InvalidStepConfigurationError,
    StepNotFoundError,
    WorkflowNotFoundError,
    WorkflowVersionInUseError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.models.workflow import (
    ConditionModel,
    StepApproverModel,
    StepModel,
    WorkflowDefinitionModel,
)
from approval_kernel.selectors.request_selector import RequestSelector
from approval_kernel.selectors.workflow_selector import WorkflowSelector
from approval_kernel.services.base import BaseService
from approval_kernel.utils.hashing import hash_payload

logger = get_logger("services.workflow_admin")

_EDITABLE_STEP_FIELDS = frozenset({
    "step_name",
    "approval_type",
    "required_percentage",
    "can_skip",
    "timeout_hours",
    "escalation_action",
    "escalation_role",
})


def definition_payload(definition: WorkflowDefinition) -> dict[str, Any]:
    """Canonical content of a version, independent of row ids."""
    return {
        "entity_type": definition.entity_type,
        "steps": [
            {
                "step_order": s.step_order,
                "step_name": s.step_name,
                "approval_type": s.approval_type,
                "required_percentage": s.required_percentage,
                "can_skip": s.can_skip,
                "timeout_hours": s.timeout_hours,
                "escalation_action": s.escalation_action,
                "escalation_role": s.escalation_role,
                "approvers": sorted(
                    [a.approver_type.value, a.approver_value or ""] for a in s.approvers
                ),
                "conditions": [
                    {
                        "field_path": c.field_path,
                        "operator": c.operator,
                        "value": to_json_value(c.value),
                        "action": c.action,
                        "route_to_role": c.route_to_role,
                    }
                    for c in s.ordered_conditions()
                ],
            }
            for s in definition.ordered_steps()
        ],
    }


def compute_definition_hash(definition: WorkflowDefinition) -> str:
    return hash_payload(definition_payload(definition))


class WorkflowAdminService(BaseService[WorkflowDefinitionModel]):
    """Administration surface for workflow definitions."""

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._workflows = WorkflowSelector(session)
        self._requests = RequestSelector(session)

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def create_workflow(
        self,
        entity_type: str,
        name: str,
        description: str = "",
        created_by: str | None = None,
    ) -> WorkflowDefinition:
        """Create the next (inactive, empty) version for an entity type."""
        version = self._workflows.latest_version_number(entity_type) + 1
        model = WorkflowDefinitionModel(
            id=uuid4(),
            entity_type=entity_type,
            name=name,
            description=description,
            version=version,
            is_active=False,
            created_by=created_by,
            created_at=self._clock.now(),
        )
        self.session.add(model)
        self.session.flush()
        logger.info(
            "workflow_version_created",
            extra={"entity_type": entity_type, "version": version, "workflow_name": name},
        )
        return model.to_dto()

    def activate(self, workflow_id: UUID) -> WorkflowDefinition:
        """Make a version the only active one for its entity type.

        Raises:
            ConfigurationError: If the version does not validate.
        """
        model = self._load_workflow(workflow_id)
        definition = model.to_dto()
        with LogContext.bind(workflow_id=str(workflow_id), entity_type=model.entity_type):
            validate_definition(definition)

            siblings = self.session.execute(
                select(WorkflowDefinitionModel)
                .where(WorkflowDefinitionModel.entity_type == model.entity_type)
                .where(WorkflowDefinitionModel.is_active.is_(True))
                .where(WorkflowDefinitionModel.id != model.id)
            ).scalars().all()
            for sibling in siblings:
                sibling.is_active = False
            # Siblings must be inactive in the database before the unique
            # active index sees this row
            self.session.flush()

            model.is_active = True
            model.activated_at = self._clock.now()
            model.definition_hash = compute_definition_hash(definition)
            self.session.flush()
            logger.info(
                "workflow_version_activated",
                extra={
                    "version": model.version,
                    "deactivated_versions": sorted(s.version for s in siblings),
                    "definition_hash": model.definition_hash,
                },
            )
        return model.to_dto()

    def deactivate(self, workflow_id: UUID) -> WorkflowDefinition:
        model = self._load_workflow(workflow_id)
        model.is_active = False
        self.session.flush()
        logger.info(
            "workflow_version_deactivated",
            extra={"entity_type": model.entity_type, "version": model.version},
        )
        return model.to_dto()

    def clone_version(
        self,
        workflow_id: UUID,
        created_by: str | None = None,
    ) -> WorkflowDefinition:
        """Copy a version's steps, approvers and conditions into a new
        inactive version.  This is how an in-use version gets "edited"."""
        source = self._load_workflow(workflow_id)
        clone = WorkflowDefinitionModel(
            id=uuid4(),
            entity_type=source.entity_type,
            name=source.name,
            description=source.description,
            version=self._workflows.latest_version_number(source.entity_type) + 1,
            is_active=False,
            created_by=created_by,
            created_at=self._clock.now(),
        )
        for step in source.steps:
            clone.steps.append(self._build_step(
                step.to_dto(),
                step_order=step.step_order,
            ))
        self.session.add(clone)
        self.session.flush()
        logger.info(
            "workflow_version_cloned",
            extra={
                "entity_type": source.entity_type,
                "source_version": source.version,
                "version": clone.version,
            },
        )
        return clone.to_dto()

    def delete_workflow(self, workflow_id: UUID) -> None:
        """Delete an unreferenced version."""
        model = self._load_workflow(workflow_id)
        self._require_editable(model)
        self.session.delete(model)
        self.session.flush()
        logger.info(
            "workflow_version_deleted",
            extra={"entity_type": model.entity_type, "version": model.version},
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def add_step(
        self,
        workflow_id: UUID,
        step_name: str,
        approval_type: ApprovalType | str = ApprovalType.ANY,
        required_percentage: Decimal | int | str | None = None,
        can_skip: bool = False,
        timeout_hours: int | None = None,
        escalation_action: EscalationAction | str = EscalationAction.NOTIFY,
        escalation_role: str | None = None,
        approvers: Iterable[ApproverSpec] = (),
        conditions: Iterable[StepCondition] = (),
        step_order: int | None = None,
    ) -> WorkflowStep:
        """Add a step at ``step_order`` (default: append), shifting later
        steps down so orders stay dense."""
        workflow = self._load_workflow(workflow_id)
        self._require_editable(workflow)

        count = len(workflow.steps)
        if step_order is None:
            step_order = count + 1
        if not 1 <= step_order <= count + 1:
            raise InvalidStepConfigurationError(
                step_name, f"step_order must be between 1 and {count + 1}",
            )

        draft = WorkflowStep(
            step_id=uuid4(),
            step_order=step_order,
            step_name=step_name,
            approval_type=_convert(step_name, "approval_type", ApprovalType, approval_type),
            required_percentage=_convert(
                step_name, "required_percentage", _to_percentage, required_percentage,
            ),
            can_skip=can_skip,
            timeout_hours=timeout_hours,
            escalation_action=_convert(
                step_name, "escalation_action", EscalationAction, escalation_action,
            ),
            escalation_role=escalation_role,
            approvers=tuple(approvers),
            conditions=tuple(conditions),
        )
        step = self._build_step(draft, step_order=step_order)

        # Shift from the bottom up so (workflow_id, step_order) stays unique
        for existing in sorted(workflow.steps, key=lambda s: s.step_order, reverse=True):
            if existing.step_order >= step_order:
                existing.step_order += 1
                self.session.flush()

        workflow.steps.append(step)
        self._after_edit(workflow)
        logger.info(
            "workflow_step_added",
            extra={"version": workflow.version, "step_order": step_order, "step_name": step_name},
        )
        return step.to_dto()

    def update_step(self, step_id: UUID, **changes: Any) -> WorkflowStep:
        """Change step attributes (name, policy, timeout, escalation)."""
        step = self._load_step(step_id)
        self._require_editable(step.workflow)

        unknown = set(changes) - _EDITABLE_STEP_FIELDS
        if unknown:
            raise InvalidStepConfigurationError(
                step.step_name, f"unknown step fields: {sorted(unknown)}",
            )
        for key, value in changes.items():
            if key == "approval_type":
                value = _convert(step.step_name, key, ApprovalType, value).value
            elif key == "escalation_action":
                value = _convert(step.step_name, key, EscalationAction, value).value
            elif key == "required_percentage":
                value = _convert(step.step_name, key, _to_percentage, value)
            setattr(step, key, value)

        self._after_edit(step.workflow)
        logger.info(
            "workflow_step_updated",
            extra={"step_order": step.step_order, "fields": sorted(changes)},
        )
        return step.to_dto()

    def remove_step(self, step_id: UUID) -> None:
        """Remove a step and close the gap in step orders."""
        step = self._load_step(step_id)
        workflow = step.workflow
        self._require_editable(workflow)

        removed_order = step.step_order
        workflow.steps.remove(step)
        self.session.flush()
        for remaining in sorted(workflow.steps, key=lambda s: s.step_order):
            if remaining.step_order > removed_order:
                remaining.step_order -= 1
                self.session.flush()

        self._after_edit(workflow)
        logger.info(
            "workflow_step_removed",
            extra={"version": workflow.version, "step_order": removed_order},
        )

    def set_approvers(self, step_id: UUID, approvers: Iterable[ApproverSpec]) -> WorkflowStep:
        """Replace a step's approver specs."""
        step = self._load_step(step_id)
        self._require_editable(step.workflow)
        step.approvers = [_approver_model(spec) for spec in approvers]
        self._after_edit(step.workflow)
        logger.info(
            "workflow_step_approvers_set",
            extra={"step_order": step.step_order, "approver_count": len(step.approvers)},
        )
        return step.to_dto()

    def set_conditions(self, step_id: UUID, conditions: Iterable[StepCondition]) -> WorkflowStep:
        """Replace a step's conditions.  List order becomes evaluation order."""
        step = self._load_step(step_id)
        self._require_editable(step.workflow)
        step.conditions = [
            _condition_model(condition, order)
            for order, condition in enumerate(conditions)
        ]
        self._after_edit(step.workflow)
        logger.info(
            "workflow_step_conditions_set",
            extra={"step_order": step.step_order, "condition_count": len(step.conditions)},
        )
        return step.to_dto()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_workflow(self, workflow_id: UUID) -> WorkflowDefinitionModel:
        model = self.session.get(WorkflowDefinitionModel, workflow_id)
        if model is None:
            raise WorkflowNotFoundError(str(workflow_id))
        return model

    def _load_step(self, step_id: UUID) -> StepModel:
        model = self.session.get(StepModel, step_id)
        if model is None:
            raise StepNotFoundError(str(step_id))
        return model

    def _require_editable(self, workflow: WorkflowDefinitionModel) -> None:
        in_use = self._requests.count_for_workflow(workflow.id)
        if in_use:
            raise WorkflowVersionInUseError(str(workflow.id), workflow.version, in_use)

    def _after_edit(self, workflow: WorkflowDefinitionModel) -> None:
        self.session.flush()
        if workflow.is_active:
            definition = workflow.to_dto()
            validate_definition(definition)
            workflow.definition_hash = compute_definition_hash(definition)
            self.session.flush()

    @staticmethod
    def _build_step(step: WorkflowStep, step_order: int) -> StepModel:
        return StepModel(
            id=uuid4(),
            step_order=step_order,
            step_name=step.step_name,
            approval_type=_convert(
                step.step_name, "approval_type", ApprovalType, step.approval_type,
            ).value,
            required_percentage=step.required_percentage,
            can_skip=step.can_skip,
            timeout_hours=step.timeout_hours,
            escalation_action=_convert(
                step.step_name, "escalation_action", EscalationAction, step.escalation_action,
            ).value,
            escalation_role=step.escalation_role,
            approvers=[_approver_model(a) for a in step.approvers],
            conditions=[
                _condition_model(c, order)
                for order, c in enumerate(step.ordered_conditions())
            ],
        )


def _approver_model(spec: ApproverSpec) -> StepApproverModel:
    return StepApproverModel(
        id=uuid4(),
        approver_type=ApproverType(spec.approver_type).value,
        approver_value=spec.approver_value,
    )


def _condition_model(condition: StepCondition, order: int) -> ConditionModel:
    return ConditionModel(
        id=uuid4(),
        field_path=condition.field_path,
        operator=_code(condition.operator),
        value=to_json_value(condition.value),
        action=_code(condition.action),
        route_to_role=condition.route_to_role,
        condition_order=order,
    )


def _code(value: Any) -> str:
    """Enum members and raw strings both store as the plain code."""
    return str(value.value) if isinstance(value, Enum) else str(value)


def _to_percentage(value: Decimal | int | str | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


def _convert(step_name: str, field: str, convert: Callable[[Any], Any], value: Any) -> Any:
    try:
        return convert(value)
    except (ValueError, InvalidOperation) as exc:
        raise InvalidStepConfigurationError(
            step_name, f"invalid {field}: {value!r}",
        ) from exc
