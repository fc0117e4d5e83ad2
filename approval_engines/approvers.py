"""
approval_engines.approvers -- Pure approver resolution engine.

Responsibility:
    Expand a step's abstract approver specifications (role, user, derived
    relationships) into the concrete set of eligible user identities, at
    step activation time.

Architecture position:
    Engines -- pure calculation layer.  The identity directory is a
    read-only port passed in by the caller; nothing here writes to it or
    caches its answers.

Rules:
    - ``role`` expands to every active user holding the role right now.
    - ``user`` resolves to that user if still active; otherwise it is dropped
      and reported as a DirectoryLookupDegradation.
    - Derived types (``requestor_manager``, ``department_head``,
      ``cost_center_owner``) resolve through the directory; a missing or
      inactive target is a degradation, not a failure.
    - Specs are unioned; duplicates collapse.
    - A re-routed step resolves only the route target role.

Failure modes:
    - ApproverResolutionError from ``resolve_step_approvers`` when the
      union is empty.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from approval_engines.tracer import traced_engine
from approval_kernel.domain.ports import IdentityDirectory
from approval_kernel.domain.request import RequestContext
from approval_kernel.domain.workflow import (
    ApproverSpec,
    ApproverType,
    WorkflowStep,
)
from approval_kernel.exceptions import ApproverResolutionError

# Document fields consulted by derived approver types without approver_value
DEPARTMENT_FIELD = "department"
COST_CENTER_FIELD = "cost_center_id"


@dataclass(frozen=True)
class DirectoryLookupDegradation:
    """An approver spec that could not contribute a user."""

    approver_type: ApproverType
    approver_value: str | None
    reason: str


@dataclass(frozen=True)
class ApproverResolution:
    """Eligible approvers plus whatever was dropped along the way."""

    approvers: frozenset[str]
    degradations: tuple[DirectoryLookupDegradation, ...] = field(default=())

    @property
    def is_empty(self) -> bool:
        return not self.approvers

    def dropped_labels(self) -> tuple[str, ...]:
        return tuple(
            f"{d.approver_type.value}:{d.approver_value or '-'}"
            for d in self.degradations
        )


def resolve_approvers(
    specs: Iterable[ApproverSpec],
    context: RequestContext,
    directory: IdentityDirectory,
) -> ApproverResolution:
    """Resolve approver specs to an eligible user set.

    Never raises for directory misses; see ``resolve_step_approvers`` for the
    empty-set check.
    """
    users: set[str] = set()
    degradations: list[DirectoryLookupDegradation] = []

    for spec in specs:
        found, degradation = _resolve_one(spec, context, directory)
        users.update(found)
        if degradation is not None:
            degradations.append(degradation)

    return ApproverResolution(
        approvers=frozenset(users),
        degradations=tuple(degradations),
    )


@traced_engine("approver_resolver", "1.0", fingerprint_fields=("route_to_role",))
def resolve_step_approvers(
    step: WorkflowStep,
    context: RequestContext,
    directory: IdentityDirectory,
    route_to_role: str | None = None,
) -> ApproverResolution:
    """Resolve the eligible set for an activating step.

    Args:
        step: The step being opened.
        context: Submitter and document fields.
        directory: Identity/role directory port.
        route_to_role: Role substituted for the stored specs when the
            Condition Evaluator re-routed this activation.

    Raises:
        ApproverResolutionError: If no eligible approver remains.
    """
    if route_to_role:
        specs: tuple[ApproverSpec, ...] = (ApproverSpec(ApproverType.ROLE, route_to_role),)
    else:
        specs = step.approvers

    resolution = resolve_approvers(specs, context, directory)
    if resolution.is_empty:
        raise ApproverResolutionError(step.step_name, resolution.dropped_labels())
    return resolution


def widen_with_role(
    current: frozenset[str],
    role: str,
    directory: IdentityDirectory,
) -> frozenset[str]:
    """Add every active holder of ``role`` to an eligible set."""
    return current | frozenset(directory.list_active_users_with_role(role))


def _resolve_one(
    spec: ApproverSpec,
    context: RequestContext,
    directory: IdentityDirectory,
) -> tuple[frozenset[str], DirectoryLookupDegradation | None]:
    approver_type = ApproverType(spec.approver_type)

    if approver_type == ApproverType.ROLE:
        if not spec.approver_value:
            return frozenset(), _degraded(spec, "role spec has no role")
        members = frozenset(directory.list_active_users_with_role(spec.approver_value))
        if not members:
            return members, _degraded(spec, "role has no active members")
        return members, None

    if approver_type == ApproverType.USER:
        return _active_user(spec, spec.approver_value, directory, "user")

    if approver_type == ApproverType.REQUESTOR_MANAGER:
        manager = directory.get_manager(context.submitted_by)
        return _active_user(spec, manager, directory, "manager")

    if approver_type == ApproverType.DEPARTMENT_HEAD:
        department = spec.approver_value or _field_str(context, DEPARTMENT_FIELD)
        if not department:
            return frozenset(), _degraded(spec, "no department to resolve")
        head = directory.get_department_head(department)
        return _active_user(spec, head, directory, "department head")

    cost_center = spec.approver_value or _field_str(context, COST_CENTER_FIELD)
    if not cost_center:
        return frozenset(), _degraded(spec, "no cost center to resolve")
    owner = directory.get_cost_center_owner(cost_center)
    return _active_user(spec, owner, directory, "cost center owner")


def _active_user(
    spec: ApproverSpec,
    user_id: str | None,
    directory: IdentityDirectory,
    label: str,
) -> tuple[frozenset[str], DirectoryLookupDegradation | None]:
    if not user_id:
        return frozenset(), _degraded(spec, f"no {label} on record")
    if not directory.is_user_active(user_id):
        return frozenset(), _degraded(spec, f"{label} {user_id} is inactive or missing")
    return frozenset({user_id}), None


def _degraded(spec: ApproverSpec, reason: str) -> DirectoryLookupDegradation:
    return DirectoryLookupDegradation(
        approver_type=ApproverType(spec.approver_type),
        approver_value=spec.approver_value,
        reason=reason,
    )


def _field_str(context: RequestContext, name: str) -> str | None:
    value = context.field_values.get(name)
    if value is None or value == "":
        return None
    return str(value)
