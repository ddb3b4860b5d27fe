"""
Test suite for buyer notifications.

Covers template rendering with the packaged templates, email delivery
through a mocked SES client, the fire-and-forget publisher and the Celery
task entry point.
"""

from unittest.mock import Mock, patch

import pytest

from marketplace.services.notifications.aws_clients import SESClientError
from marketplace.services.notifications.service import (
    NotificationDeliveryError,
    NotificationPublisher,
    NotificationService,
    NotificationType,
)
from marketplace.services.notifications.templates import (
    TemplateEngine,
    TemplateNotFoundError,
)


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def order_placed_context() -> dict:
    return {
        "order_id": "3f0c2d9a-0000-4000-8000-000000000001",
        "created_at": "2026-01-01T10:00:00+00:00",
        "items": [
            {"product_id": "prod-x", "quantity": 2, "unit_price": "10.00"},
            {"product_id": "prod-y", "quantity": 1, "unit_price": "5.00"},
        ],
        "subtotal": "25.00",
        "discount_amount": "2.00",
        "total_price": "23.00",
        "voucher_code": "SAVE10",
    }


@pytest.fixture
def mock_ses_client() -> Mock:
    client = Mock()
    client.send_email.return_value = {"message_id": "msg-1", "status": "sent"}
    return client


@pytest.fixture
def notification_service(mock_ses_client) -> NotificationService:
    return NotificationService(ses_client=mock_ses_client, template_engine=TemplateEngine())


# ============================================================================
# Template Tests
# ============================================================================


class TestTemplateEngine:
    """Tests for the packaged notification templates."""

    def test_order_placed(self, order_placed_context):
        rendered = TemplateEngine().render_email("order_placed", order_placed_context)

        assert rendered["subject"] == f"Order {order_placed_context['order_id']} received"
        assert "prod-x" in rendered["html_body"]
        assert "January 01, 2026" in rendered["html_body"]
        assert "(SAVE10)" in rendered["html_body"]
        assert "Total: 23.00" in rendered["text_body"]

    def test_line_item_status_changed(self):
        rendered = TemplateEngine().render_email(
            "line_item_status_changed",
            {
                "order_id": "order-1",
                "line_item_id": "item-1",
                "status": "failed_to_ship",
                "tracking_number": "TRK-1-ABC",
                "order_status": "shipping",
            },
        )

        assert rendered["subject"] == "Update on your order order-1"
        assert "failed to ship" in rendered["html_body"]
        assert "TRK-1-ABC" in rendered["text_body"]

    def test_html_is_escaped(self, order_placed_context):
        context = {**order_placed_context, "order_id": "<script>"}

        rendered = TemplateEngine().render_email("order_placed", context)

        assert "<script>" not in rendered["html_body"]
        assert "&lt;script&gt;" in rendered["html_body"]

    def test_missing_template(self):
        with pytest.raises(TemplateNotFoundError):
            TemplateEngine().render_email("does_not_exist", {})

    def test_currency_filter(self):
        assert TemplateEngine._format_currency("250000") == "250,000.00"
        assert TemplateEngine._format_currency("n/a") == "n/a"


# ============================================================================
# Delivery Tests
# ============================================================================


class TestNotificationService:
    """Tests for rendering and sending an email."""

    def test_send_email(self, notification_service, mock_ses_client, order_placed_context):
        # Act
        result = notification_service.send_email(
            NotificationType.ORDER_PLACED, "buyer@example.com", order_placed_context
        )

        # Assert
        assert result["status"] == "sent"
        kwargs = mock_ses_client.send_email.call_args.kwargs
        assert kwargs["to_addresses"] == ["buyer@example.com"]
        assert kwargs["subject"].startswith("Order ")
        assert "prod-y" in kwargs["body_text"]
        assert kwargs["body_html"].startswith("<html>")

    def test_ses_failure_wrapped(
        self, notification_service, mock_ses_client, order_placed_context
    ):
        mock_ses_client.send_email.side_effect = SESClientError("throttled")

        with pytest.raises(NotificationDeliveryError) as exc_info:
            notification_service.send_email(
                NotificationType.ORDER_PLACED, "buyer@example.com", order_placed_context
            )

        assert exc_info.value.context["notification_type"] == "order_placed"


# ============================================================================
# Publisher Tests
# ============================================================================


class TestNotificationPublisher:
    """Tests for the fire-and-forget publisher used by request handlers."""

    @patch("marketplace.services.notifications.tasks.send_email_task.apply_async")
    def test_publish_enqueues_task(self, mock_apply_async):
        publisher = NotificationPublisher(enabled=True)

        assert publisher.publish(
            NotificationType.ORDER_PLACED, "buyer@example.com", {"order_id": "1"}
        )
        mock_apply_async.assert_called_once_with(
            args=("order_placed", "buyer@example.com", {"order_id": "1"}),
            retry=False,
        )

    @patch("marketplace.services.notifications.tasks.send_email_task.apply_async")
    def test_disabled_publisher_skips(self, mock_apply_async):
        publisher = NotificationPublisher(enabled=False)

        assert not publisher.publish(
            NotificationType.ORDER_PLACED, "buyer@example.com", {}
        )
        mock_apply_async.assert_not_called()

    @patch("marketplace.services.notifications.tasks.send_email_task.apply_async")
    def test_missing_recipient_skips(self, mock_apply_async):
        publisher = NotificationPublisher(enabled=True)

        assert not publisher.publish(NotificationType.ORDER_PLACED, None, {})
        mock_apply_async.assert_not_called()

    @patch("marketplace.services.notifications.tasks.send_email_task.apply_async")
    def test_broker_failure_swallowed(self, mock_apply_async):
        """Test an enqueue failure is reported, never raised."""
        mock_apply_async.side_effect = ConnectionError("broker down")
        publisher = NotificationPublisher(enabled=True)

        assert not publisher.publish(
            NotificationType.LINE_ITEM_STATUS_CHANGED, "buyer@example.com", {}
        )

    def test_default_follows_settings(self):
        # conftest disables notifications for the test session
        assert NotificationPublisher().enabled is False


# ============================================================================
# Task Tests
# ============================================================================


class TestSendEmailTask:
    @patch("marketplace.services.notifications.tasks.NotificationService")
    def test_task_sends_email(self, mock_service_cls):
        from marketplace.services.notifications.tasks import send_email_task

        mock_service_cls.return_value.send_email.return_value = {"status": "sent"}

        result = send_email_task.run("order_placed", "buyer@example.com", {"order_id": "1"})

        assert result == {"status": "sent"}
        mock_service_cls.return_value.send_email.assert_called_once_with(
            NotificationType.ORDER_PLACED, "buyer@example.com", {"order_id": "1"}
        )


class TestCeleryApp:
    """Tests for the Celery application the web process publishes to."""

    def test_worker_configuration(self):
        from marketplace.worker import celery_app

        assert "marketplace.services.notifications.tasks" in celery_app.conf.include
        assert celery_app.conf.task_serializer == "json"
        assert celery_app.conf.task_always_eager is True

    def test_task_bound_to_configured_app(self):
        """Test tasks published from the API use the configured broker."""
        import marketplace.main  # noqa: F401
        from marketplace.core.config import get_settings
        from marketplace.services.notifications.tasks import send_email_task
        from marketplace.worker import celery_app

        assert send_email_task.app is celery_app
        assert send_email_task.app.conf.broker_url == get_settings().celery_broker_url
        assert send_email_task.app.conf.task_always_eager is True
        assert send_email_task.name in celery_app.tasks
