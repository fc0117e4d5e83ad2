"""
approval_engines.validation -- Workflow definition validator.

Responsibility:
    Check a workflow version is evaluable before it is activated: dense step
    ordering, consensus policy parameters, escalation targets, approver
    specs and conditions.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Failure modes:
    - ``validate_definition`` raises the first ConfigurationError found.
    - ``check_definition`` collects every problem instead, for admin
      tooling that reports them all at once.
"""

from __future__ import annotations

from decimal import Decimal

from approval_engines.conditions import validate_condition
from approval_kernel.domain.workflow import (
    VALUE_REQUIRED_APPROVER_TYPES,
    ApprovalType,
    ApproverType,
    EscalationAction,
    WorkflowDefinition,
    WorkflowStep,
)
from approval_kernel.exceptions import (
    ConfigurationError,
    InvalidStepConfigurationError,
)


def validate_definition(definition: WorkflowDefinition) -> None:
    """Raise the first configuration problem in ``definition``."""
    problems = check_definition(definition)
    if problems:
        raise problems[0]


def check_definition(definition: WorkflowDefinition) -> list[ConfigurationError]:
    """Return every configuration problem in ``definition`` (empty if valid)."""
    problems: list[ConfigurationError] = []
    steps = definition.ordered_steps()

    if not steps:
        problems.append(InvalidStepConfigurationError(
            definition.name, "workflow has no steps",
        ))
        return problems

    orders = [s.step_order for s in steps]
    if orders != list(range(1, len(steps) + 1)):
        problems.append(InvalidStepConfigurationError(
            definition.name,
            f"step orders must be 1..{len(steps)} without gaps, got {orders}",
        ))

    for step in steps:
        problems.extend(check_step(step))
    return problems


def check_step(step: WorkflowStep) -> list[ConfigurationError]:
    """Return every configuration problem on one step."""
    problems: list[ConfigurationError] = []

    def bad(reason: str) -> None:
        problems.append(InvalidStepConfigurationError(step.step_name, reason))

    try:
        approval_type = ApprovalType(step.approval_type)
    except ValueError:
        bad(f"unknown approval_type '{step.approval_type}'")
        approval_type = None

    if approval_type == ApprovalType.PERCENTAGE:
        pct = step.required_percentage
        if pct is None:
            bad("percentage steps need required_percentage")
        elif not (Decimal("0") < Decimal(pct) <= Decimal("100")):
            bad(f"required_percentage must be in (0, 100], got {pct}")
    elif approval_type is not None and step.required_percentage is not None:
        bad("required_percentage is only valid for percentage steps")

    if step.timeout_hours is not None and step.timeout_hours <= 0:
        bad(f"timeout_hours must be positive, got {step.timeout_hours}")

    try:
        escalation = EscalationAction(step.escalation_action)
    except ValueError:
        bad(f"unknown escalation_action '{step.escalation_action}'")
        escalation = None
    if escalation == EscalationAction.ESCALATE_TO_ROLE and not step.escalation_role:
        bad("escalate_to_role needs an escalation_role")

    if not step.approvers:
        bad("step has no approvers")
    for spec in step.approvers:
        try:
            approver_type = ApproverType(spec.approver_type)
        except ValueError:
            bad(f"unknown approver_type '{spec.approver_type}'")
            continue
        if approver_type in VALUE_REQUIRED_APPROVER_TYPES and not spec.approver_value:
            bad(f"{approver_type.value} approver needs an approver_value")

    for condition in step.ordered_conditions():
        try:
            validate_condition(condition)
        except ConfigurationError as exc:
            problems.append(exc)

    return problems
