"""ORM models for the approval kernel."""

from approval_kernel.models.request import ApprovalActionModel, ApprovalRequestModel
from approval_kernel.models.workflow import (
    ConditionModel,
    StepApproverModel,
    StepModel,
    WorkflowDefinitionModel,
)

__all__ = [
    "ApprovalActionModel",
    "ApprovalRequestModel",
    "ConditionModel",
    "StepApproverModel",
    "StepModel",
    "WorkflowDefinitionModel",
]
