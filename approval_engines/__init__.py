"""
Module: approval_engines
Responsibility:
    Package entrypoint re-exporting the pure approval engines: condition
    evaluation, approver resolution, consensus aggregation, step sequencing,
    escalation planning and definition validation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain/ types and exceptions (and
    sibling engine modules).  MUST NOT import services, selectors or models.

Invariants enforced:
    - Engines never read the clock; ``now`` is always passed in.
    - Identical inputs always produce identical outputs.
"""

from approval_engines.approvers import (
    ApproverResolution,
    DirectoryLookupDegradation,
    resolve_approvers,
    resolve_step_approvers,
    widen_with_role,
)
from approval_engines.conditions import (
    evaluate_condition,
    evaluate_step_activation,
    is_bypassed,
    resolve_field,
    validate_condition,
)
from approval_engines.consensus import ConsensusTally, aggregate, tally
from approval_engines.escalation import (
    EscalationPlan,
    compute_deadline,
    is_escalation_due,
    plan_escalation,
)
from approval_engines.sequencer import SequencerOutcome, SkippedStep, advance
from approval_engines.validation import check_definition, validate_definition

__all__ = [
    "ApproverResolution",
    "ConsensusTally",
    "DirectoryLookupDegradation",
    "EscalationPlan",
    "SequencerOutcome",
    "SkippedStep",
    "advance",
    "aggregate",
    "check_definition",
    "compute_deadline",
    "evaluate_condition",
    "evaluate_step_activation",
    "is_bypassed",
    "is_escalation_due",
    "plan_escalation",
    "resolve_approvers",
    "resolve_field",
    "resolve_step_approvers",
    "tally",
    "validate_condition",
    "validate_definition",
    "widen_with_role",
]
