"""
Pure domain layer.

Value objects for workflow definitions, approval requests, verdicts and the
external collaborator protocols, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (other than the injectable Clock)
- I/O

All domain objects are immutable and deterministic.
"""

from approval_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from approval_kernel.domain.ports import (
    IdentityDirectory,
    NotificationDispatcher,
    NotificationType,
    WorkflowNotification,
)
from approval_kernel.domain.request import (
    APPROVER_DECISIONS,
    PENDING_STATUSES,
    REQUEST_TRANSITIONS,
    SYSTEM_DECISIONS,
    TERMINAL_REQUEST_STATUSES,
    ActionType,
    ActivationDecision,
    ActivationKind,
    ApprovalActionRecord,
    ApprovalRequest,
    RequestContext,
    RequestStatus,
    Verdict,
)
from approval_kernel.domain.workflow import (
    BYPASS_FIELD,
    ApprovalType,
    ApproverSpec,
    ApproverType,
    ConditionAction,
    ConditionOperator,
    EscalationAction,
    StepCondition,
    WorkflowDefinition,
    WorkflowStep,
)

__all__ = [
    "APPROVER_DECISIONS",
    "BYPASS_FIELD",
    "PENDING_STATUSES",
    "REQUEST_TRANSITIONS",
    "SYSTEM_DECISIONS",
    "TERMINAL_REQUEST_STATUSES",
    "ActionType",
    "ActivationDecision",
    "ActivationKind",
    "ApprovalActionRecord",
    "ApprovalRequest",
    "ApprovalType",
    "ApproverSpec",
    "ApproverType",
    "Clock",
    "ConditionAction",
    "ConditionOperator",
    "DeterministicClock",
    "EscalationAction",
    "IdentityDirectory",
    "NotificationDispatcher",
    "NotificationType",
    "RequestContext",
    "RequestStatus",
    "StepCondition",
    "SystemClock",
    "Verdict",
    "WorkflowDefinition",
    "WorkflowNotification",
    "WorkflowStep",
]
