"""
Celery tasks for background notification delivery.
"""

from typing import Any

from celery import Task

from marketplace.core.logging import get_logger
from marketplace.services.notifications.service import (
    NotificationDeliveryError,
    NotificationService,
    NotificationType,
)
from marketplace.worker import celery_app

logger = get_logger(__name__)


class NotificationTask(Task):
    """
    Base task class for notification tasks with retry logic.

    Delivery errors are retried with exponential backoff and jitter; the
    hooks below log every outcome.
    """

    autoretry_for = (NotificationDeliveryError,)
    retry_kwargs = {"max_retries": 3}
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True

    def on_failure(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        logger.error(
            "Notification task failed",
            task_id=task_id,
            exception=str(exc),
            exc_info=einfo,
        )

    def on_retry(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        logger.warning(
            "Notification task retrying",
            task_id=task_id,
            exception=str(exc),
            retry_count=self.request.retries,
            max_retries=self.max_retries,
        )

    def on_success(
        self,
        retval: Any,
        task_id: str,
        args: tuple,
        kwargs: dict,
    ) -> None:
        logger.info("Notification task completed successfully", task_id=task_id)


@celery_app.task(
    bind=True,
    base=NotificationTask,
    name="notifications.send_email",
    time_limit=120,
    soft_time_limit=90,
)
def send_email_task(
    self: Task,
    notification_type: str,
    recipient: str,
    context: dict[str, Any],
) -> dict[str, Any]:
    """
    Render and send a notification email.

    Args:
        notification_type: NotificationType value
        recipient: Buyer email address
        context: Template context data

    Returns:
        SES delivery result
    """
    logger.info(
        "Processing notification task",
        task_id=self.request.id,
        notification_type=notification_type,
    )

    service = NotificationService()
    return service.send_email(NotificationType(notification_type), recipient, context)
