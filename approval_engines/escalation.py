"""
approval_engines.escalation -- Pure escalation clock engine.

Responsibility:
    Step deadline arithmetic and the mapping from a step's configured
    ``escalation_action`` to what the state machine must do when the
    deadline elapses.

Architecture position:
    Engines -- pure calculation layer.  NEVER reads the clock; callers pass
    ``now`` explicitly.  The engine holds no timers: an external scheduler
    calls the escalation service.

Rules:
    - Deadline = step opened/re-armed time + ``timeout_hours``; no timeout
      means no deadline.
    - Escalation is due when ``now >= deadline``.
    - ``notify``: record an escalate action, notify, re-arm from now.
    - ``auto_approve`` / ``auto_reject``: synthesize the system action and
      re-run the transition logic; no re-arm.
    - ``escalate_to_role``: widen the eligible set with the fallback role,
      notify, re-arm from now.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from approval_kernel.domain.request import ActionType
from approval_kernel.domain.workflow import EscalationAction, WorkflowStep


@dataclass(frozen=True)
class EscalationPlan:
    """What the state machine does for one elapsed deadline."""

    action: ActionType
    widen_to_role: str | None = None
    rearm: bool = False
    notify: bool = False

    @property
    def decides_step(self) -> bool:
        return self.action in (ActionType.AUTO_APPROVE, ActionType.AUTO_REJECT)


def compute_deadline(step: WorkflowStep, opened_at: datetime) -> datetime | None:
    """Deadline for a step opened (or re-armed) at ``opened_at``."""
    if step.timeout_hours is None:
        return None
    return opened_at + timedelta(hours=step.timeout_hours)


def is_escalation_due(deadline: datetime | None, now: datetime) -> bool:
    """True if a deadline exists and has elapsed."""
    return deadline is not None and now >= deadline


def plan_escalation(step: WorkflowStep) -> EscalationPlan:
    """Map the step's configured escalation action to a plan."""
    action = EscalationAction(step.escalation_action)
    if action == EscalationAction.AUTO_APPROVE:
        return EscalationPlan(ActionType.AUTO_APPROVE)
    if action == EscalationAction.AUTO_REJECT:
        return EscalationPlan(ActionType.AUTO_REJECT)
    if action == EscalationAction.ESCALATE_TO_ROLE:
        return EscalationPlan(
            ActionType.ESCALATE,
            widen_to_role=step.escalation_role,
            rearm=True,
            notify=True,
        )
    return EscalationPlan(ActionType.ESCALATE, rearm=True, notify=True)
