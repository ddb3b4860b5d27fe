"""
Buyer notifications.

:class:`NotificationService` renders and sends an email; it runs inside the
Celery worker. Request handlers never call it directly: they hand events to
:class:`NotificationPublisher`, which enqueues a task and returns
immediately. Notification delivery is best effort and never undoes the
business operation that triggered it.
"""

from enum import Enum
from typing import Any, Optional

from marketplace.core.config import get_settings
from marketplace.core.logging import get_logger
from marketplace.services.notifications.aws_clients import SESClient, SESClientError
from marketplace.services.notifications.templates import (
    TemplateEngine,
    TemplateEngineError,
)

logger = get_logger(__name__)


class NotificationType(str, Enum):
    """Notification kinds; the value doubles as the template name."""

    ORDER_PLACED = "order_placed"
    LINE_ITEM_STATUS_CHANGED = "line_item_status_changed"


class NotificationServiceError(Exception):
    """Base exception for notification service errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.context = context


class NotificationDeliveryError(NotificationServiceError):
    """Exception for notification delivery failures."""

    pass


class NotificationService:
    """Renders notification templates and delivers them through SES."""

    def __init__(
        self,
        ses_client: Optional[SESClient] = None,
        template_engine: Optional[TemplateEngine] = None,
    ) -> None:
        self.ses_client = ses_client or SESClient()
        self.template_engine = template_engine or TemplateEngine()

    def send_email(
        self,
        notification_type: NotificationType,
        recipient: str,
        context: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Render and send one notification email.

        Args:
            notification_type: Which notification to send
            recipient: Email address of the buyer
            context: Template variables

        Returns:
            SES delivery result

        Raises:
            NotificationDeliveryError: If rendering or sending fails
        """
        try:
            rendered = self.template_engine.render_email(notification_type.value, context)
            return self.ses_client.send_email(
                to_addresses=[recipient],
                subject=rendered["subject"],
                body_text=rendered.get("text_body") or rendered["subject"],
                body_html=rendered["html_body"],
            )
        except (TemplateEngineError, SESClientError) as e:
            logger.error(
                "Notification delivery failed",
                notification_type=notification_type.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise NotificationDeliveryError(
                f"Failed to deliver {notification_type.value} notification",
                notification_type=notification_type.value,
                error=str(e),
            ) from e


class NotificationPublisher:
    """
    Fire-and-forget entry point used by the order and shipping services.

    ``publish`` never raises: a broker outage is logged and reported through
    the return value only.
    """

    def __init__(self, enabled: Optional[bool] = None) -> None:
        self.enabled = get_settings().notifications_enabled if enabled is None else enabled

    def publish(
        self,
        notification_type: NotificationType,
        recipient: Optional[str],
        context: dict[str, Any],
    ) -> bool:
        """
        Enqueue a notification email.

        Returns:
            True if the task was enqueued
        """
        if not self.enabled or not recipient:
            logger.debug(
                "Notification skipped",
                notification_type=notification_type.value,
                enabled=self.enabled,
                has_recipient=bool(recipient),
            )
            return False

        from marketplace.services.notifications.tasks import send_email_task

        try:
            # No publish retries: a broker outage must not stall the request.
            send_email_task.apply_async(
                args=(notification_type.value, recipient, context),
                retry=False,
            )
        except Exception as e:
            # Delivery is best effort; the triggering operation already committed.
            logger.error(
                "Failed to enqueue notification",
                notification_type=notification_type.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        logger.info("Notification enqueued", notification_type=notification_type.value)
        return True
