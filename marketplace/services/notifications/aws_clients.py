"""
AWS SES client wrapper with error handling.

Emails are sent synchronously from Celery workers, so the client retries
throttling and connection errors in-process with exponential backoff before
giving up.
"""

import time
from typing import Any, Optional

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
)

from marketplace.core.config import get_settings
from marketplace.core.logging import get_logger

logger = get_logger(__name__)

NON_RETRYABLE_SES_ERRORS = frozenset(
    {
        "MessageRejected",
        "MailFromDomainNotVerified",
        "ConfigurationSetDoesNotExist",
    }
)


class SESClientError(Exception):
    """Exception for SES errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.service = "SES"
        self.context = context


class SESClient:
    """
    AWS SES client wrapper with retry logic.

    Credentials come from the standard boto3 provider chain.
    """

    def __init__(
        self,
        region_name: Optional[str] = None,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
        client: Any = None,
    ) -> None:
        """
        Initialize SES client.

        Args:
            region_name: AWS region name (defaults to settings)
            max_retries: Maximum number of send attempts
            retry_backoff: Initial backoff time in seconds for retries
            client: Preconfigured boto3 SES client
        """
        settings = get_settings()
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.default_from_address = settings.ses_from_email
        self._client = client or boto3.client(
            "ses", region_name=region_name or settings.aws_region
        )

    def send_email(
        self,
        to_addresses: list[str],
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
        from_address: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Send email via AWS SES with retry logic.

        Returns:
            Dictionary containing message ID and delivery status

        Raises:
            SESClientError: If sending is rejected or fails after retries
        """
        from_address = from_address or self.default_from_address

        if not to_addresses:
            raise SESClientError("At least one recipient email address is required")

        message: dict[str, Any] = {
            "Subject": {"Data": subject, "Charset": "UTF-8"},
            "Body": {"Text": {"Data": body_text, "Charset": "UTF-8"}},
        }
        if body_html:
            message["Body"]["Html"] = {"Data": body_html, "Charset": "UTF-8"}

        last_exception: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                response = self._client.send_email(
                    Source=from_address,
                    Destination={"ToAddresses": to_addresses},
                    Message=message,
                )
                message_id = response["MessageId"]
                logger.info(
                    "Email sent successfully via SES",
                    message_id=message_id,
                    to_addresses=to_addresses,
                    attempt=attempt + 1,
                )
                return {
                    "message_id": message_id,
                    "status": "sent",
                    "to_addresses": to_addresses,
                    "subject": subject,
                }

            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "Unknown")
                error_message = e.response.get("Error", {}).get("Message", str(e))
                logger.warning(
                    "SES client error",
                    attempt=attempt + 1,
                    error_code=error_code,
                    error_message=error_message,
                )
                if error_code in NON_RETRYABLE_SES_ERRORS:
                    raise SESClientError(
                        f"SES error: {error_message}",
                        error_code=error_code,
                        to_addresses=to_addresses,
                    ) from e
                last_exception = e

            except (EndpointConnectionError, BotoCoreError) as e:
                logger.warning("SES connection error", attempt=attempt + 1, error=str(e))
                last_exception = e

            if attempt < self.max_retries - 1:
                time.sleep(self.retry_backoff * (2**attempt))

        raise SESClientError(
            f"Failed to send email after {self.max_retries} attempts",
            to_addresses=to_addresses,
            last_error=str(last_exception),
        ) from last_exception
