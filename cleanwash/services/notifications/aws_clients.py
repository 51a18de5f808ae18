"""
AWS SES client wrapper with error handling.

This module provides the email transport for transactional notifications: a
thin boto3 SES wrapper with bounded retries and exponential backoff for
throttling and connection failures. Calls are blocking and are executed off
the event loop by the notification service.
"""

import time
from typing import Any, Optional

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    EndpointConnectionError,
)

from cleanwash.core.config import get_settings
from cleanwash.core.exceptions import NotificationError
from cleanwash.core.logging import get_logger

logger = get_logger(__name__)

# SES error codes that will not succeed on retry
PERMANENT_SES_ERRORS = frozenset(
    {
        "MessageRejected",
        "MailFromDomainNotVerified",
        "ConfigurationSetDoesNotExist",
        "InvalidParameterValue",
    }
)


class SESClientError(NotificationError):
    """Exception for SES delivery failures."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, service="SES", **context)


class SESClient:
    """
    AWS SES client wrapper with retry logic.

    Provides email sending with delivery tracking and error classification.
    """

    def __init__(
        self,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        region_name: Optional[str] = None,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
    ) -> None:
        """
        Initialize SES client.

        Args:
            aws_access_key_id: AWS access key ID (defaults to settings)
            aws_secret_access_key: AWS secret access key (defaults to settings)
            region_name: AWS region name (defaults to settings)
            max_retries: Maximum number of send attempts
            retry_backoff: Initial backoff time in seconds for retries
        """
        settings = get_settings()
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.from_address = settings.ses_from_email
        region = region_name or settings.aws_region

        # Empty credentials fall through to boto3's default credential chain
        self._client = boto3.client(
            "ses",
            aws_access_key_id=aws_access_key_id or settings.aws_access_key_id or None,
            aws_secret_access_key=(
                aws_secret_access_key or settings.aws_secret_access_key or None
            ),
            region_name=region,
        )

        logger.info("SES client initialized", region=region, max_retries=max_retries)

    def send_email(
        self,
        to_addresses: list[str],
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
        from_address: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Send email via AWS SES with retry logic.

        Args:
            to_addresses: Recipient email addresses
            subject: Email subject
            body_html: HTML email body
            body_text: Plain text email body (optional)
            from_address: Sender address (defaults to settings)

        Returns:
            Dictionary containing message ID and delivery status

        Raises:
            SESClientError: If email sending fails after retries
        """
        from_address = from_address or self.from_address

        if not to_addresses:
            raise SESClientError(
                "At least one recipient email address is required",
                to_addresses=to_addresses,
            )

        body: dict[str, Any] = {"Html": {"Data": body_html, "Charset": "UTF-8"}}
        if body_text:
            body["Text"] = {"Data": body_text, "Charset": "UTF-8"}

        send_params: dict[str, Any] = {
            "Source": from_address,
            "Destination": {"ToAddresses": to_addresses},
            "Message": {
                "Subject": {"Data": subject, "Charset": "UTF-8"},
                "Body": body,
            },
        }

        last_exception: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                response = self._client.send_email(**send_params)
                message_id = response["MessageId"]

                logger.info(
                    "Email sent via SES",
                    message_id=message_id,
                    attempt=attempt + 1,
                    to_addresses=to_addresses,
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
                last_exception = e

                if error_code in PERMANENT_SES_ERRORS:
                    raise SESClientError(
                        f"SES error: {error_message}",
                        error_code=error_code,
                        to_addresses=to_addresses,
                    ) from e

            except (BotoConnectionError, EndpointConnectionError, BotoCoreError) as e:
                logger.warning(
                    "SES connection error",
                    attempt=attempt + 1,
                    error=str(e),
                )
                last_exception = e

            if attempt < self.max_retries - 1:
                time.sleep(self.retry_backoff * (2**attempt))

        raise SESClientError(
            f"Failed to send email after {self.max_retries} attempts",
            to_addresses=to_addresses,
            last_error=str(last_exception),
        ) from last_exception


def get_ses_client(max_retries: int = 3, retry_backoff: float = 1.0) -> SESClient:
    """
    Factory function to create an SES client.

    Args:
        max_retries: Maximum number of send attempts
        retry_backoff: Initial backoff time in seconds

    Returns:
        Configured SES client
    """
    return SESClient(max_retries=max_retries, retry_backoff=retry_backoff)
