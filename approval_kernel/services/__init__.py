"""Write services for the approval kernel."""

from approval_kernel.services.approval_request_service import ApprovalRequestService
from approval_kernel.services.base import BaseService
from approval_kernel.services.escalation_service import (
    EscalationFailure,
    EscalationService,
    EscalationSweepResult,
)
from approval_kernel.services.notification_dispatcher import (
    LoggingNotificationDispatcher,
)
from approval_kernel.services.workflow_admin_service import (
    WorkflowAdminService,
    compute_definition_hash,
)

__all__ = [
    "ApprovalRequestService",
    "BaseService",
    "EscalationFailure",
    "EscalationService",
    "EscalationSweepResult",
    "LoggingNotificationDispatcher",
    "WorkflowAdminService",
    "compute_definition_hash",
]
