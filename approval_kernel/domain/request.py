"""
Approval request domain types (``approval_kernel.domain.request``).

Responsibility
--------------
Pure value objects for the request lifecycle: statuses and their legal
transitions, the append-only action record, engine verdicts, and the frozen
request snapshot handed back to callers.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants carried
------------------
* ``REQUEST_TRANSITIONS`` is the only source of legal status changes.
  Terminal statuses have no outgoing edges.
* ``blocked`` is a sub-state of pending: it is non-terminal and only the
  administrator paths (retry, cancel) leave it.
* Action records are immutable; verdicts are always recomputed from them.
* ``returned`` is terminal: a sent-back document is resubmitted as a new
  request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping
from uuid import UUID


class RequestStatus(str, Enum):
    """Approval request lifecycle states."""

    PENDING = "pending"
    BLOCKED = "blocked"
    APPROVED = "approved"
    REJECTED = "rejected"
    RETURNED = "returned"
    CANCELLED = "cancelled"


REQUEST_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({
        RequestStatus.PENDING,
        RequestStatus.BLOCKED,
        RequestStatus.APPROVED,
        RequestStatus.REJECTED,
        RequestStatus.RETURNED,
        RequestStatus.CANCELLED,
    }),
    RequestStatus.BLOCKED: frozenset({
        RequestStatus.PENDING,
        RequestStatus.BLOCKED,
        RequestStatus.APPROVED,
        RequestStatus.CANCELLED,
    }),
    RequestStatus.APPROVED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
    RequestStatus.RETURNED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}

TERMINAL_REQUEST_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.APPROVED,
    RequestStatus.REJECTED,
    RequestStatus.RETURNED,
    RequestStatus.CANCELLED,
})

PENDING_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.PENDING,
    RequestStatus.BLOCKED,
})


class ActionType(str, Enum):
    """Kinds of entries in a request's action log."""

    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    ESCALATE = "escalate"
    AUTO_APPROVE = "auto_approve"
    AUTO_REJECT = "auto_reject"
    DELEGATE = "delegate"
    COMMENT = "comment"
    SEND_BACK = "send_back"


# Decisions a human approver may submit through record_action()
APPROVER_DECISIONS: frozenset[ActionType] = frozenset({
    ActionType.APPROVE,
    ActionType.REJECT,
})

# Actions synthesized by the engine on timeout
SYSTEM_DECISIONS: frozenset[ActionType] = frozenset({
    ActionType.AUTO_APPROVE,
    ActionType.AUTO_REJECT,
})


class Verdict(str, Enum):
    """Consensus outcome for one step."""

    PENDING = "pending"
    SATISFIED = "satisfied"
    REJECTED = "rejected"


class ActivationKind(str, Enum):
    """Condition Evaluator outcome for one step."""

    ACTIVATE = "activate"
    SKIP = "skip"
    REROUTE = "reroute"


@dataclass(frozen=True)
class ActivationDecision:
    """Whether a reached step opens, is skipped, or opens for another role."""

    kind: ActivationKind
    route_to_role: str | None = None
    reason: str = ""

    @classmethod
    def activate(cls, reason: str = "") -> ActivationDecision:
        return cls(ActivationKind.ACTIVATE, reason=reason)

    @classmethod
    def skip(cls, reason: str = "") -> ActivationDecision:
        return cls(ActivationKind.SKIP, reason=reason)

    @classmethod
    def reroute(cls, role: str, reason: str = "") -> ActivationDecision:
        return cls(ActivationKind.REROUTE, route_to_role=role, reason=reason)

    @property
    def opens_step(self) -> bool:
        return self.kind != ActivationKind.SKIP


@dataclass(frozen=True)
class RequestContext:
    """What the Approver Resolver may know about the submission."""

    submitted_by: str
    field_values: Mapping[str, Any] = field(default_factory=dict)
    entity_type: str = ""
    entity_id: str = ""


@dataclass(frozen=True)
class ApprovalActionRecord:
    """One entry of a request's append-only action log. Immutable."""

    action_id: UUID
    request_id: UUID
    step_id: UUID
    action: ActionType
    sequence: int
    actor_id: str | None = None
    comment: str = ""
    delegated_to: str | None = None
    acted_at: datetime | None = None

    @property
    def is_system(self) -> bool:
        return self.actor_id is None


@dataclass(frozen=True)
class ApprovalRequest:
    """Immutable snapshot of an approval request.

    ``workflow_id``/``workflow_version`` are frozen at submission; step
    evaluation always re-reads that version.
    """

    request_id: UUID
    workflow_id: UUID
    workflow_version: int
    entity_type: str
    entity_id: str
    status: RequestStatus
    submitted_by: str
    entity_number: str | None = None
    field_values: Mapping[str, Any] = field(default_factory=dict)
    current_step_id: UUID | None = None
    current_step_order: int = 0
    eligible_approvers: frozenset[str] = frozenset()
    route_to_role: str | None = None
    step_opened_at: datetime | None = None
    step_deadline_at: datetime | None = None
    escalation_count: int = 0
    escalated_at: datetime | None = None
    blocked_reason: str | None = None
    submitted_at: datetime | None = None
    completed_at: datetime | None = None
    version: int = 1
    actions: tuple[ApprovalActionRecord, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REQUEST_STATUSES

    @property
    def is_blocked(self) -> bool:
        return self.status == RequestStatus.BLOCKED

    def actions_for_step(self, step_id: UUID) -> tuple[ApprovalActionRecord, ...]:
        return tuple(a for a in self.actions if a.step_id == step_id)
