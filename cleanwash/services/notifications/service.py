"""
Notification service for order completion emails.

Completion notifications are best-effort: the order status change has already
been committed when a notification is attempted, so delivery failures are
logged and reported as ``False`` rather than raised to the caller.
"""

import asyncio
from typing import Any, Optional

from cleanwash.core.config import get_settings
from cleanwash.core.exceptions import GatewayError, NotificationError
from cleanwash.core.logging import get_logger
from cleanwash.database.gateway import DataGateway
from cleanwash.schemas.orders import OrderView
from cleanwash.services.notifications.aws_clients import SESClient, get_ses_client
from cleanwash.services.notifications.templates import (
    TemplateEngine,
    get_template_engine,
)

logger = get_logger(__name__)

ORDER_COMPLETED_TEMPLATE = "order_completed"
DEFAULT_RECIPIENT_NAME = "Student"
ORDER_REFERENCE_LENGTH = 8


class NotificationService:
    """
    Sends transactional emails about orders.

    Recipient details are resolved through the data gateway at send time, so
    the latest profile email is always used.
    """

    def __init__(
        self,
        gateway: DataGateway,
        ses_client: Optional[SESClient] = None,
        template_engine: Optional[TemplateEngine] = None,
    ) -> None:
        """
        Initialize notification service.

        Args:
            gateway: Data gateway used to look up recipient profiles
            ses_client: AWS SES client (created lazily from settings)
            template_engine: Template engine (defaults to the shared one)
        """
        self.gateway = gateway
        self._ses_client = ses_client
        self.template_engine = template_engine or get_template_engine()

    @property
    def ses_client(self) -> SESClient:
        if self._ses_client is None:
            settings = get_settings()
            self._ses_client = get_ses_client(
                max_retries=settings.notification_max_retries,
                retry_backoff=settings.notification_retry_backoff,
            )
        return self._ses_client

    async def send_order_completed(
        self,
        email: str,
        name: Optional[str],
        order_id: Any,
        delivery_notes: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Email a student that their order is ready.

        Args:
            email: Recipient address
            name: Student's display name, ``"Student"`` when blank
            order_id: Order identifier, shown truncated to 8 characters
            delivery_notes: Worker notes recorded on completion

        Returns:
            SES delivery result

        Raises:
            NotificationError: If rendering or delivery fails
        """
        if not email:
            raise NotificationError("Recipient email is required", order_id=str(order_id))

        context = {
            "student_name": (name or "").strip() or DEFAULT_RECIPIENT_NAME,
            "order_reference": str(order_id)[:ORDER_REFERENCE_LENGTH],
            "delivery_notes": delivery_notes,
            "brand_name": get_settings().app_name.replace(" API", ""),
        }
        rendered = self.template_engine.render_email(ORDER_COMPLETED_TEMPLATE, context)

        # boto3 is blocking
        result = await asyncio.to_thread(
            self.ses_client.send_email,
            [email],
            rendered["subject"],
            rendered["html_body"],
            rendered.get("text_body"),
        )

        logger.info(
            "Order completion email sent",
            order_id=str(order_id),
            message_id=result.get("message_id"),
        )
        return result

    async def notify_order_completed(self, order: OrderView) -> bool:
        """
        Notify the order's student that it has been completed.

        Returns:
            True if an email was sent, False if skipped or failed
        """
        order_id = str(order.id)
        try:
            profiles = await self.gateway.query(
                "profiles", filters={"id": str(order.student_id)}
            )
        except GatewayError as e:
            logger.error(
                "Could not load recipient profile",
                order_id=order_id,
                student_id=str(order.student_id),
                error=str(e),
            )
            return False

        profile = profiles[0] if profiles else {}
        email = profile.get("email")
        if not email:
            logger.warning(
                "Skipping completion email, no recipient address",
                order_id=order_id,
                student_id=str(order.student_id),
            )
            return False

        try:
            await self.send_order_completed(
                email,
                profile.get("full_name"),
                order.id,
                delivery_notes=order.notes,
            )
        except NotificationError as e:
            logger.error(
                "Order completion email failed",
                order_id=order_id,
                error=e.message,
                context=e.context,
            )
            return False

        return True
