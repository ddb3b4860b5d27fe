"""
Test suite for the AWS SES client wrapper.

Covers message construction, retry of throttling and connection errors,
non-retryable rejections and the exponential backoff schedule.
"""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    EndpointConnectionError,
)

from marketplace.services.notifications.aws_clients import SESClient, SESClientError


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def boto_client() -> MagicMock:
    client = MagicMock()
    client.send_email.return_value = {"MessageId": "test-message-id"}
    return client


@pytest.fixture
def ses_client(boto_client) -> SESClient:
    """SES client wired to a mock boto3 client."""
    return SESClient(max_retries=3, retry_backoff=0.1, client=boto_client)


def client_error(code: str, message: str = "error") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, "SendEmail")


# ============================================================================
# Send Email Tests
# ============================================================================


class TestSESClientSendEmail:
    """Test suite for SES email sending."""

    def test_send_email_success(self, ses_client, boto_client):
        # Act
        result = ses_client.send_email(
            to_addresses=["buyer@example.com"],
            subject="Order received",
            body_text="Thanks",
            body_html="<p>Thanks</p>",
        )

        # Assert
        assert result == {
            "message_id": "test-message-id",
            "status": "sent",
            "to_addresses": ["buyer@example.com"],
            "subject": "Order received",
        }
        kwargs = boto_client.send_email.call_args.kwargs
        assert kwargs["Destination"] == {"ToAddresses": ["buyer@example.com"]}
        assert kwargs["Message"]["Body"]["Html"]["Data"] == "<p>Thanks</p>"

    def test_default_from_address(self, ses_client, boto_client):
        ses_client.send_email(["buyer@example.com"], "Subject", "Body")

        assert boto_client.send_email.call_args.kwargs["Source"] == ses_client.default_from_address

    def test_text_only_email(self, ses_client, boto_client):
        ses_client.send_email(["buyer@example.com"], "Subject", "Body")

        assert "Html" not in boto_client.send_email.call_args.kwargs["Message"]["Body"]

    def test_no_recipients(self, ses_client, boto_client):
        with pytest.raises(SESClientError):
            ses_client.send_email([], "Subject", "Body")

        boto_client.send_email.assert_not_called()

    def test_non_retryable_error(self, ses_client, boto_client):
        """Test rejected messages fail on the first attempt."""
        boto_client.send_email.side_effect = client_error(
            "MessageRejected", "Email address not verified"
        )

        with pytest.raises(SESClientError) as exc_info:
            ses_client.send_email(["buyer@example.com"], "Subject", "Body")

        assert exc_info.value.context["error_code"] == "MessageRejected"
        assert boto_client.send_email.call_count == 1

    @patch("marketplace.services.notifications.aws_clients.time.sleep")
    def test_throttling_retried(self, mock_sleep, ses_client, boto_client):
        boto_client.send_email.side_effect = [
            client_error("Throttling", "Rate exceeded"),
            {"MessageId": "test-message-id"},
        ]

        result = ses_client.send_email(["buyer@example.com"], "Subject", "Body")

        assert result["status"] == "sent"
        assert boto_client.send_email.call_count == 2

    @patch("marketplace.services.notifications.aws_clients.time.sleep")
    @pytest.mark.parametrize(
        "error",
        [
            BotoConnectionError(error="Connection failed"),
            EndpointConnectionError(endpoint_url="https://email.us-east-1.amazonaws.com"),
            BotoCoreError(),
        ],
    )
    def test_connection_errors_retried(self, mock_sleep, ses_client, boto_client, error):
        boto_client.send_email.side_effect = [error, {"MessageId": "test-message-id"}]

        result = ses_client.send_email(["buyer@example.com"], "Subject", "Body")

        assert result["message_id"] == "test-message-id"

    @patch("marketplace.services.notifications.aws_clients.time.sleep")
    def test_exhausted_retries(self, mock_sleep, ses_client, boto_client):
        boto_client.send_email.side_effect = client_error("ServiceUnavailable")

        with pytest.raises(SESClientError) as exc_info:
            ses_client.send_email(["buyer@example.com"], "Subject", "Body")

        assert "Failed to send email after 3 attempts" in str(exc_info.value)
        assert boto_client.send_email.call_count == 3

    @patch("marketplace.services.notifications.aws_clients.time.sleep")
    def test_retry_backoff(self, mock_sleep, ses_client, boto_client):
        """Test backoff doubles between attempts."""
        boto_client.send_email.side_effect = [
            client_error("Throttling"),
            client_error("Throttling"),
            {"MessageId": "test-message-id"},
        ]

        ses_client.send_email(["buyer@example.com"], "Subject", "Body")

        assert mock_sleep.call_count == 2
        mock_sleep.assert_any_call(0.1)
        mock_sleep.assert_any_call(0.2)


class TestSESClientInitialization:
    @patch("marketplace.services.notifications.aws_clients.boto3.client")
    def test_creates_boto_client_for_region(self, mock_boto3_client):
        SESClient(region_name="ap-southeast-1")

        mock_boto3_client.assert_called_once_with("ses", region_name="ap-southeast-1")

    def test_error_carries_service(self):
        error = SESClientError("boom", error_code="X")

        assert error.service == "SES"
        assert error.context == {"error_code": "X"}
