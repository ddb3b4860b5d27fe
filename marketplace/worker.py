"""
Celery application.

Start a worker with ``celery -A marketplace.worker worker``.
"""

from celery import Celery

from marketplace.core.config import get_settings
from marketplace.core.logging import configure_logging

settings = get_settings()

celery_app = Celery(
    "marketplace",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["marketplace.services.notifications.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    task_always_eager=settings.celery_task_always_eager,
    broker_connection_retry_on_startup=True,
)

configure_logging()
