"""
approval_engines.conditions -- Pure step-condition evaluation engine.

Responsibility:
    Decide, for a reached step and a submitted document's field values,
    whether the step activates, is skipped, or is re-routed to another
    role.  Also answers the orthogonal ``can_skip`` bypass question.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain/ types and exceptions.

Rules:
    - No conditions -> ACTIVATE.
    - Conditions are conjunctive: the set is satisfied iff every condition
      holds.
    - The first-listed condition's ``action`` decides the outcome of a
      satisfied set: ``skip`` -> SKIP, ``route_to_role`` -> REROUTE,
      ``require`` -> ACTIVATE.
    - An unsatisfied ``require`` set skips the step; unsatisfied ``skip``
      and ``route_to_role`` sets leave the step active with its stored
      approvers.
    - A missing field is ``None``.  Every comparison against ``None`` is
      False except ``is_empty``.
    - Ordering operators coerce numeric strings to Decimal; a value that
      is not numeric makes the comparison False.
    - Equality and membership compare numerically when both sides are
      numeric, so "50000.00" (a stored Decimal amount) equals 50000.

Failure modes:
    - InvalidConditionError for a malformed ``field_path``, unknown
      operator, unknown action, a membership operator whose value is not a
      list, or ``route_to_role`` without a target role.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from approval_kernel.domain.request import ActivationDecision
from approval_kernel.domain.workflow import (
    BYPASS_FIELD,
    MEMBERSHIP_OPERATORS,
    ORDERING_OPERATORS,
    UNARY_OPERATORS,
    ConditionAction,
    ConditionOperator,
    StepCondition,
    WorkflowStep,
)
from approval_kernel.exceptions import InvalidConditionError

_FIELD_PATH_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z0-9_]+)*$")

_MISSING = object()


def evaluate_step_activation(
    step: WorkflowStep,
    field_values: Mapping[str, Any],
) -> ActivationDecision:
    """Decide whether ``step`` activates for a document.

    Args:
        step: The reached step.
        field_values: The submitted document's field values.

    Returns:
        ActivationDecision (ACTIVATE, SKIP, or REROUTE with the target role).

    Raises:
        InvalidConditionError: If any condition is malformed.
    """
    conditions = step.ordered_conditions()
    if not conditions:
        return ActivationDecision.activate("no conditions")

    for condition in conditions:
        validate_condition(condition)

    satisfied = all(evaluate_condition(c, field_values) for c in conditions)
    lead = conditions[0]
    action = ConditionAction(lead.action)

    if satisfied:
        if action == ConditionAction.SKIP:
            return ActivationDecision.skip("skip conditions satisfied")
        if action == ConditionAction.ROUTE_TO_ROLE:
            return ActivationDecision.reroute(
                lead.route_to_role,
                f"routed to role '{lead.route_to_role}'",
            )
        return ActivationDecision.activate("required by conditions")

    if action == ConditionAction.REQUIRE:
        return ActivationDecision.skip("required conditions not met")
    return ActivationDecision.activate(f"{action.value} conditions not met")


def evaluate_condition(
    condition: StepCondition,
    field_values: Mapping[str, Any],
) -> bool:
    """Evaluate a single condition against document field values.

    Raises:
        InvalidConditionError: If the condition is malformed.
    """
    operator = _parse_operator(condition)
    actual = resolve_field(condition.field_path, field_values)
    expected = condition.value

    if operator == ConditionOperator.IS_EMPTY:
        return _is_empty(actual)
    if actual is None:
        return False
    if operator == ConditionOperator.IS_NOT_EMPTY:
        return not _is_empty(actual)

    if operator in ORDERING_OPERATORS:
        left = to_number(actual)
        right = to_number(expected)
        if left is None or right is None:
            return False
        if operator == ConditionOperator.GT:
            return left > right
        if operator == ConditionOperator.LT:
            return left < right
        if operator == ConditionOperator.GTE:
            return left >= right
        return left <= right

    if operator == ConditionOperator.EQ:
        return _equals(actual, expected)
    if operator == ConditionOperator.NEQ:
        return expected is not None and not _equals(actual, expected)

    if operator in MEMBERSHIP_OPERATORS:
        members = _as_members(condition)
        found = any(_equals(actual, member) for member in members)
        return found if operator == ConditionOperator.IN else not found

    if expected is None:
        return False
    found = _contains(actual, expected)
    return found if operator == ConditionOperator.CONTAINS else not found


def resolve_field(field_path: str, field_values: Mapping[str, Any]) -> Any:
    """Resolve a dotted field path against document field values.

    A flat key that literally contains the dotted path wins over nested
    traversal.  Missing fields resolve to ``None``.

    Raises:
        InvalidConditionError: If ``field_path`` is malformed.
    """
    if not isinstance(field_path, str) or not _FIELD_PATH_RE.match(field_path):
        raise InvalidConditionError(str(field_path), "-", "malformed field_path")

    if field_path in field_values:
        return field_values[field_path]

    current: Any = field_values
    for part in field_path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part, _MISSING)
        else:
            return None
        if current is _MISSING or current is None:
            return None
    return current


def validate_condition(condition: StepCondition) -> None:
    """Check a condition is well-formed without evaluating it.

    Raises:
        InvalidConditionError: On the first problem found.
    """
    if not isinstance(condition.field_path, str) or not _FIELD_PATH_RE.match(
        condition.field_path
    ):
        raise InvalidConditionError(
            str(condition.field_path), str(condition.operator),
            "malformed field_path",
        )
    operator = _parse_operator(condition)

    try:
        action = ConditionAction(condition.action)
    except ValueError:
        raise InvalidConditionError(
            condition.field_path, operator.value,
            f"unknown action '{condition.action}'",
        ) from None

    if action == ConditionAction.ROUTE_TO_ROLE and not condition.route_to_role:
        raise InvalidConditionError(
            condition.field_path, operator.value,
            "route_to_role action requires a target role",
        )
    if operator in MEMBERSHIP_OPERATORS:
        _as_members(condition)
    if operator not in UNARY_OPERATORS and operator in ORDERING_OPERATORS:
        if to_number(condition.value) is None:
            raise InvalidConditionError(
                condition.field_path, operator.value,
                f"ordering comparison needs a numeric value, got {condition.value!r}",
            )


def is_bypassed(step: WorkflowStep, field_values: Mapping[str, Any]) -> bool:
    """True if the document's explicit bypass flag skips this ``can_skip`` step.

    The flag is the ``approval_bypass`` field: ``True`` bypasses every
    ``can_skip`` step, a list bypasses those whose order or name it holds.
    """
    if not step.can_skip:
        return False
    flag = field_values.get(BYPASS_FIELD)
    if flag is True:
        return True
    if isinstance(flag, (list, tuple, set, frozenset)):
        return (
            step.step_order in flag
            or str(step.step_order) in flag
            or step.step_name in flag
        )
    return False


def to_number(value: Any) -> Decimal | None:
    """Coerce ints, floats, Decimals and numeric strings to Decimal.

    Booleans and non-numeric values return None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        try:
            number = Decimal(str(value))
        except InvalidOperation:
            return None
        return number if number.is_finite() else None
    if isinstance(value, str):
        try:
            number = Decimal(value.strip().replace(",", ""))
        except InvalidOperation:
            return None
        return number if number.is_finite() else None
    return None


def _parse_operator(condition: StepCondition) -> ConditionOperator:
    try:
        return ConditionOperator(condition.operator)
    except ValueError:
        raise InvalidConditionError(
            str(condition.field_path), str(condition.operator), "unknown operator",
        ) from None


def _as_members(condition: StepCondition) -> tuple[Any, ...]:
    if isinstance(condition.value, (list, tuple, set, frozenset)):
        return tuple(condition.value)
    raise InvalidConditionError(
        condition.field_path, str(condition.operator),
        f"membership operator needs a list value, got {condition.value!r}",
    )


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str):
        return str(expected) in actual
    if isinstance(actual, (list, tuple, set, frozenset)):
        return any(_equals(item, expected) for item in actual)
    return str(expected) in str(actual)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def _equals(actual: Any, expected: Any) -> bool:
    left, right = to_number(actual), to_number(expected)
    if left is not None and right is not None:
        return left == right
    return actual == expected
