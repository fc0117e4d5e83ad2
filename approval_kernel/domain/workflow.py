"""
Workflow definition domain types (``approval_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects describing a versioned approval workflow: the ordered
step chain, each step's consensus policy, approver specifications,
activation conditions and escalation behaviour.  Engines interpret these
objects; nothing here evaluates them.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/``, ``selectors/`` or outer layers.

Invariants carried
------------------
* Steps are ordered by ``step_order`` (1-based, dense) within a version.
* ``required_percentage`` is present iff ``approval_type`` is
  ``percentage``.
* Condition ``operator``/``action`` are kept as the raw configured strings
  so that an unknown value is reported by the evaluator as a
  ``ConfigurationError`` instead of failing on load.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class ApprovalType(str, Enum):
    """Consensus policy of a step."""

    ANY = "any"
    ALL = "all"
    PERCENTAGE = "percentage"


class EscalationAction(str, Enum):
    """What happens when a step's timeout elapses unresolved."""

    NOTIFY = "notify"
    AUTO_APPROVE = "auto_approve"
    AUTO_REJECT = "auto_reject"
    ESCALATE_TO_ROLE = "escalate_to_role"


class ApproverType(str, Enum):
    """Kinds of approver specification."""

    ROLE = "role"
    USER = "user"
    REQUESTOR_MANAGER = "requestor_manager"
    DEPARTMENT_HEAD = "department_head"
    COST_CENTER_OWNER = "cost_center_owner"


# Approver types that need an explicit approver_value
VALUE_REQUIRED_APPROVER_TYPES: frozenset[ApproverType] = frozenset({
    ApproverType.ROLE,
    ApproverType.USER,
})


class ConditionOperator(str, Enum):
    """Fixed set of comparison operators for step conditions."""

    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    IN = "in"
    NOT_IN = "not_in"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


ORDERING_OPERATORS: frozenset[ConditionOperator] = frozenset({
    ConditionOperator.GT,
    ConditionOperator.LT,
    ConditionOperator.GTE,
    ConditionOperator.LTE,
})

MEMBERSHIP_OPERATORS: frozenset[ConditionOperator] = frozenset({
    ConditionOperator.IN,
    ConditionOperator.NOT_IN,
})

UNARY_OPERATORS: frozenset[ConditionOperator] = frozenset({
    ConditionOperator.IS_EMPTY,
    ConditionOperator.IS_NOT_EMPTY,
})


class ConditionAction(str, Enum):
    """What a satisfied condition set does to its step."""

    REQUIRE = "require"
    SKIP = "skip"
    ROUTE_TO_ROLE = "route_to_role"


# Document field carrying the explicit can_skip bypass flag.
# ``True`` bypasses every can_skip step; a list names step orders or names.
BYPASS_FIELD = "approval_bypass"


@dataclass(frozen=True)
class ApproverSpec:
    """Abstract approver reference, resolved to users at step activation."""

    approver_type: ApproverType
    approver_value: str | None = None


@dataclass(frozen=True)
class StepCondition:
    """Predicate over a submitted document's fields."""

    field_path: str
    operator: str
    value: Any = None
    action: str = ConditionAction.REQUIRE.value
    route_to_role: str | None = None
    condition_order: int = 0


@dataclass(frozen=True)
class WorkflowStep:
    """One gate in the approval chain."""

    step_id: UUID
    step_order: int
    step_name: str
    approval_type: ApprovalType = ApprovalType.ANY
    required_percentage: Decimal | None = None
    can_skip: bool = False
    timeout_hours: int | None = None
    escalation_action: EscalationAction = EscalationAction.NOTIFY
    escalation_role: str | None = None
    approvers: tuple[ApproverSpec, ...] = ()
    conditions: tuple[StepCondition, ...] = ()

    def ordered_conditions(self) -> tuple[StepCondition, ...]:
        """Conditions in configured order (stable for equal orders)."""
        return tuple(sorted(self.conditions, key=lambda c: c.condition_order))


@dataclass(frozen=True)
class WorkflowDefinition:
    """A versioned, immutable-once-used approval chain for one entity type."""

    workflow_id: UUID
    entity_type: str
    name: str
    version: int
    is_active: bool = False
    steps: tuple[WorkflowStep, ...] = ()
    description: str = ""
    definition_hash: str | None = None

    def ordered_steps(self) -> tuple[WorkflowStep, ...]:
        return tuple(sorted(self.steps, key=lambda s: s.step_order))

    def step_by_id(self, step_id: UUID) -> WorkflowStep | None:
        for step in self.steps:
            if step.step_id == step_id:
                return step
        return None

    def step_by_order(self, step_order: int) -> WorkflowStep | None:
        for step in self.steps:
            if step.step_order == step_order:
                return step
        return None
