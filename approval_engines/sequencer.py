"""
approval_engines.sequencer -- Pure step sequencing engine.

Responsibility:
    Walk a workflow version's ordered steps after a given position and find
    the next step that actually opens, applying the ``can_skip`` bypass and
    the Condition Evaluator to each.  Approver resolution is part of opening
    a step, so the outcome also carries the resolved eligible set.

Architecture position:
    Engines -- pure calculation layer.  Reads the identity directory port
    passed in by the caller; never touches persistence.

Outcomes:
    - ``opened``    -- a step opened; ``resolution`` holds its approvers.
    - ``completed`` -- no applicable step remains; the request is approved.
    - ``blocked``   -- a step could not be evaluated or resolved; ``error``
      carries the ConfigurationError and ``step`` the blocked step.

Invariants:
    - Steps are visited in ascending ``step_order``; each is visited once.
    - Bypass is checked before conditions.
    - Skipped steps are listed in visit order for logging.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from approval_engines.approvers import ApproverResolution, resolve_step_approvers
from approval_engines.conditions import evaluate_step_activation, is_bypassed
from approval_engines.tracer import traced_engine
from approval_kernel.domain.ports import IdentityDirectory
from approval_kernel.domain.request import ActivationKind, RequestContext
from approval_kernel.domain.workflow import WorkflowDefinition, WorkflowStep
from approval_kernel.exceptions import ConfigurationError


@dataclass(frozen=True)
class SkippedStep:
    step: WorkflowStep
    reason: str


@dataclass(frozen=True)
class SequencerOutcome:
    """Where a request lands after advancing past ``after_order``."""

    step: WorkflowStep | None = None
    resolution: ApproverResolution | None = None
    route_to_role: str | None = None
    skipped: tuple[SkippedStep, ...] = field(default=())
    error: ConfigurationError | None = None

    @property
    def opened(self) -> bool:
        return self.step is not None and self.error is None

    @property
    def blocked(self) -> bool:
        return self.error is not None

    @property
    def completed(self) -> bool:
        return self.step is None and self.error is None


@traced_engine("sequencer", "1.0", fingerprint_fields=("after_order",))
def advance(
    definition: WorkflowDefinition,
    context: RequestContext,
    directory: IdentityDirectory,
    after_order: int = 0,
) -> SequencerOutcome:
    """Find the next step after ``after_order`` that opens.

    Args:
        definition: The workflow version frozen on the request.
        context: Submitter and document fields.
        directory: Identity/role directory port.
        after_order: Order of the step just completed (0 at submission).
    """
    skipped: list[SkippedStep] = []
    for step in definition.ordered_steps():
        if step.step_order <= after_order:
            continue
        outcome = open_step(step, context.field_values, context, directory)
        if isinstance(outcome, SkippedStep):
            skipped.append(outcome)
            continue
        return SequencerOutcome(
            step=outcome.step,
            resolution=outcome.resolution,
            route_to_role=outcome.route_to_role,
            skipped=tuple(skipped),
            error=outcome.error,
        )
    return SequencerOutcome(skipped=tuple(skipped))


def open_step(
    step: WorkflowStep,
    field_values: Mapping[str, Any],
    context: RequestContext,
    directory: IdentityDirectory,
) -> SequencerOutcome | SkippedStep:
    """Decide one step: skipped, opened with approvers, or blocked."""
    if is_bypassed(step, field_values):
        return SkippedStep(step, "bypassed by document flag")

    try:
        decision = evaluate_step_activation(step, field_values)
    except ConfigurationError as exc:
        return SequencerOutcome(step=step, error=exc)

    if decision.kind == ActivationKind.SKIP:
        return SkippedStep(step, decision.reason)

    try:
        resolution = resolve_step_approvers(
            step, context, directory, route_to_role=decision.route_to_role,
        )
    except ConfigurationError as exc:
        return SequencerOutcome(
            step=step, route_to_role=decision.route_to_role, error=exc,
        )

    return SequencerOutcome(
        step=step,
        resolution=resolution,
        route_to_role=decision.route_to_role,
    )
