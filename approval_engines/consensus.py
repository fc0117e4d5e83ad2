"""
approval_engines.consensus -- Pure consensus aggregation engine.

Responsibility:
    Decide from a step's recorded actions whether the step is satisfied,
    rejected, or still pending under its ``any`` / ``all`` / ``percentage``
    policy.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Rules:
    - Only actions recorded against the step are considered.
    - A system ``auto_reject`` yields REJECTED; a system ``auto_approve``
      yields SATISFIED.
    - Each eligible approver counts once, by their latest approve/reject
      (highest sequence).  Actions from non-eligible actors are ignored.
    - ``any`` / ``all``: one reject vetoes.  ``any`` needs one approve;
      ``all`` needs every eligible approver to approve.
    - ``percentage``: SATISFIED when approved * 100 >= required * eligible.
      A rejection does not veto on its own; the step is REJECTED once the
      threshold is out of reach even if every undecided approver approves.
    - An empty eligible set is never satisfied by approver actions.

Idempotence:
    The verdict is a function of the action log alone; no counters are
    carried between calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from approval_engines.tracer import traced_engine
from approval_kernel.domain.request import (
    APPROVER_DECISIONS,
    ActionType,
    ApprovalActionRecord,
    Verdict,
)
from approval_kernel.domain.workflow import ApprovalType, WorkflowStep


@dataclass(frozen=True)
class ConsensusTally:
    """Distinct-approver counts behind a verdict."""

    verdict: Verdict
    eligible: int
    approved: int
    rejected: int

    @property
    def undecided(self) -> int:
        return self.eligible - self.approved - self.rejected


def latest_decisions(
    actions: Iterable[ApprovalActionRecord],
    step_id: UUID,
    eligible: frozenset[str],
) -> dict[str, ActionType]:
    """Map each eligible actor to their most recent approve/reject on a step."""
    latest: dict[str, ApprovalActionRecord] = {}
    for action in actions:
        if action.step_id != step_id or action.action not in APPROVER_DECISIONS:
            continue
        if action.actor_id is None or action.actor_id not in eligible:
            continue
        prior = latest.get(action.actor_id)
        if prior is None or action.sequence > prior.sequence:
            latest[action.actor_id] = action
    return {actor: record.action for actor, record in latest.items()}


@traced_engine("consensus", "1.0", fingerprint_fields=("eligible",))
def tally(
    step: WorkflowStep,
    eligible: frozenset[str],
    actions: Iterable[ApprovalActionRecord],
) -> ConsensusTally:
    """Aggregate a step's actions into a verdict with its supporting counts."""
    step_actions = [a for a in actions if a.step_id == step.step_id]

    decisions = latest_decisions(step_actions, step.step_id, eligible)
    approved = sum(1 for d in decisions.values() if d == ActionType.APPROVE)
    rejected = sum(1 for d in decisions.values() if d == ActionType.REJECT)
    total = len(eligible)

    def result(verdict: Verdict) -> ConsensusTally:
        return ConsensusTally(verdict, total, approved, rejected)

    system = [a.action for a in step_actions if a.action in (
        ActionType.AUTO_REJECT, ActionType.AUTO_APPROVE,
    )]
    if ActionType.AUTO_REJECT in system:
        return result(Verdict.REJECTED)
    if ActionType.AUTO_APPROVE in system:
        return result(Verdict.SATISFIED)

    if total == 0:
        return result(Verdict.PENDING)

    approval_type = ApprovalType(step.approval_type)

    if approval_type == ApprovalType.PERCENTAGE:
        required = step.required_percentage or Decimal("100")
        if approved * 100 >= required * total:
            return result(Verdict.SATISFIED)
        reachable = approved + (total - approved - rejected)
        if reachable * 100 < required * total:
            return result(Verdict.REJECTED)
        return result(Verdict.PENDING)

    if rejected:
        return result(Verdict.REJECTED)
    if approval_type == ApprovalType.ANY:
        return result(Verdict.SATISFIED if approved else Verdict.PENDING)
    return result(Verdict.SATISFIED if approved == total else Verdict.PENDING)


def aggregate(
    step: WorkflowStep,
    eligible: frozenset[str],
    actions: Iterable[ApprovalActionRecord],
) -> Verdict:
    """Verdict for a step given its eligible approvers and the action log."""
    return tally(step, eligible, actions).verdict
