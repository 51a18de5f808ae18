"""
Test suite for NotificationService.

Tests cover rendering of the completion email, recipient lookup through the
data gateway, and the best-effort contract: every failure is reported as
False instead of being raised.
"""

from unittest.mock import MagicMock

import pytest

from cleanwash.core.exceptions import GatewayError, NotificationError
from cleanwash.services.notifications.aws_clients import SESClient, SESClientError
from cleanwash.services.notifications.service import NotificationService
from cleanwash.services.notifications.templates import TemplateEngine


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def ses_client() -> MagicMock:
    client = MagicMock(spec=SESClient)
    client.send_email.return_value = {"message_id": "msg-1", "status": "sent"}
    return client


@pytest.fixture
def service(mock_gateway, ses_client) -> NotificationService:
    return NotificationService(
        mock_gateway, ses_client=ses_client, template_engine=TemplateEngine()
    )


def sent_message(ses_client: MagicMock) -> tuple:
    return ses_client.send_email.call_args.args


# ============================================================================
# Email Rendering Tests
# ============================================================================


class TestSendOrderCompleted:
    async def test_sends_rendered_email(self, service, ses_client):
        result = await service.send_order_completed(
            "asha@campus.edu", "Asha", "9f1c2d3e-aaaa-4bbb-8ccc-dddddddddddd"
        )

        assert result["message_id"] == "msg-1"
        to_addresses, subject, html_body, text_body = sent_message(ses_client)
        assert to_addresses == ["asha@campus.edu"]
        assert subject == "Your laundry order has been completed!"
        assert "Hi Asha" in html_body
        assert "CleanWash" in text_body

    async def test_reference_is_truncated(self, service, ses_client):
        await service.send_order_completed(
            "asha@campus.edu", "Asha", "9f1c2d3e-aaaa-4bbb-8ccc-dddddddddddd"
        )

        _, _, html_body, text_body = sent_message(ses_client)
        assert "#9f1c2d3e" in text_body
        assert "9f1c2d3e-aaaa" not in html_body

    async def test_blank_name_defaults_to_student(self, service, ses_client):
        await service.send_order_completed("asha@campus.edu", "  ", "9f1c2d3e")

        _, _, html_body, _ = sent_message(ses_client)
        assert "Hi Student" in html_body

    async def test_delivery_notes_included(self, service, ses_client):
        await service.send_order_completed(
            "asha@campus.edu", "Asha", "9f1c2d3e", delivery_notes="Left at reception"
        )

        _, _, _, text_body = sent_message(ses_client)
        assert "Delivery notes: Left at reception" in text_body

    async def test_missing_email_raises(self, service, ses_client):
        with pytest.raises(NotificationError):
            await service.send_order_completed("", "Asha", "9f1c2d3e")

        ses_client.send_email.assert_not_called()


# ============================================================================
# Best-effort Notification Tests
# ============================================================================


class TestNotifyOrderCompleted:
    async def test_looks_up_student_and_sends(
        self, service, mock_gateway, ses_client, make_order_view, make_student_row
    ):
        order = make_order_view(status="completed", notes="Left at reception")
        mock_gateway.query.return_value = [make_student_row()]

        assert await service.notify_order_completed(order) is True

        mock_gateway.query.assert_awaited_once_with(
            "profiles", filters={"id": str(order.student_id)}
        )
        _, _, _, text_body = sent_message(ses_client)
        assert "Left at reception" in text_body
        assert str(order.id)[:8] in text_body

    async def test_missing_profile_skips(self, service, mock_gateway, ses_client, make_order_view):
        mock_gateway.query.return_value = []

        assert await service.notify_order_completed(make_order_view()) is False
        ses_client.send_email.assert_not_called()

    async def test_missing_email_skips(
        self, service, mock_gateway, ses_client, make_order_view, make_student_row
    ):
        mock_gateway.query.return_value = [make_student_row(email=None)]

        assert await service.notify_order_completed(make_order_view()) is False
        ses_client.send_email.assert_not_called()

    async def test_gateway_failure_returns_false(self, service, mock_gateway, make_order_view):
        mock_gateway.query.side_effect = GatewayError("Query failed")

        assert await service.notify_order_completed(make_order_view()) is False

    async def test_delivery_failure_returns_false(
        self, service, mock_gateway, ses_client, make_order_view, make_student_row
    ):
        mock_gateway.query.return_value = [make_student_row()]
        ses_client.send_email.side_effect = SESClientError(
            "SES error: rejected", error_code="MessageRejected"
        )

        assert await service.notify_order_completed(make_order_view()) is False
