"""
Notification dispatch adapters.

The engine only emits ``WorkflowNotification`` events; delivery (mail, chat,
in-app inbox) belongs to the host application.  ``LoggingNotificationDispatcher``
is the default sink: it writes each event to the structured log so that
nothing is lost when no real dispatcher is wired in.
"""

from approval_kernel.domain.ports import WorkflowNotification
from approval_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class LoggingNotificationDispatcher:
    """Writes notifications to the structured log."""

    def dispatch(self, notification: WorkflowNotification) -> None:
        logger.info(
            "workflow_notification",
            extra={
                "notification_type": notification.type.value,
                "recipients": sorted(notification.recipients),
                "request_id": str(notification.request_id),
                "entity_type": notification.entity_type,
                "entity_id": notification.entity_id,
                "step_name": notification.step_name,
                "status": notification.status,
                "detail": notification.detail,
            },
        )
