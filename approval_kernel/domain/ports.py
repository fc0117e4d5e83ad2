"""
External collaborator interfaces (``approval_kernel.domain.ports``).

Responsibility
--------------
Protocols the engine calls out to -- the identity/role directory and the
notification dispatcher -- plus the notification event value object.
Delivery mechanics and directory storage live outside the kernel.

Architecture position
---------------------
**Kernel domain layer**.  ZERO I/O; implementations are injected into
services by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Sequence
from uuid import UUID


class IdentityDirectory(Protocol):
    """Read-only view of users and roles.  The engine never writes to it."""

    def list_active_users_with_role(self, role: str) -> Sequence[str]:
        """Return every active user currently holding ``role``."""
        ...

    def is_user_active(self, user_id: str) -> bool:
        """Return True if the user exists and is active."""
        ...

    def get_manager(self, user_id: str) -> str | None:
        """Return the user's manager, if one is on record."""
        ...

    def get_department_head(self, department: str) -> str | None:
        """Return the head of a department, if one is on record."""
        ...

    def get_cost_center_owner(self, cost_center: str) -> str | None:
        """Return the owner of a cost center, if one is on record."""
        ...


class NotificationType(str, Enum):
    """Events the engine emits."""

    ESCALATION = "escalation"
    STEP_OPENED = "step_opened"
    REQUEST_RESOLVED = "request_resolved"
    REQUEST_BLOCKED = "request_blocked"


@dataclass(frozen=True)
class WorkflowNotification:
    """An outbound notification event.  Delivery is external."""

    type: NotificationType
    recipients: frozenset[str]
    request_id: UUID
    entity_type: str
    entity_id: str
    entity_number: str | None = None
    step_name: str | None = None
    status: str | None = None
    detail: str = ""


class NotificationDispatcher(Protocol):
    """Sink for workflow notifications."""

    def dispatch(self, notification: WorkflowNotification) -> None:
        ...
