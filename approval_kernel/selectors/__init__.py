"""Read-only selectors for workflow definitions and approval requests."""

from approval_kernel.selectors.base import BaseSelector
from approval_kernel.selectors.request_selector import RequestSelector
from approval_kernel.selectors.workflow_selector import WorkflowSelector

__all__ = ["BaseSelector", "RequestSelector", "WorkflowSelector"]
