"""
Test suite for the order, catalog and live queue endpoints.

Endpoints run against a FastAPI TestClient with the order service replaced
by a mock, so the tests exercise routing, role enforcement, request
validation and the mapping of domain errors to HTTP responses. The
authentication tests sign real access tokens and resolve the profile
through a mocked data gateway.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from starlette.websockets import WebSocketDisconnect

from cleanwash.api.deps import get_current_actor, get_order_service
from cleanwash.core.config import get_settings
from cleanwash.core.exceptions import (
    GatewayError,
    OrderNotFoundError,
    OrderValidationError,
)
from cleanwash.main import create_app
from cleanwash.schemas.orders import ClothingItemSummary, OrderCreateRequest
from cleanwash.services.orders.enums import OrderStatus
from cleanwash.services.orders.service import OrderService
from cleanwash.services.orders.state_machine import (
    OrderStateMachine,
    StateTransitionError,
)

API = "/api/v1"


def make_token(subject: str, **claims) -> str:
    settings = get_settings()
    payload = {
        "sub": subject,
        "aud": settings.jwt_audience,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        **claims,
    }
    return jwt.encode(payload, settings.auth_jwt_secret, algorithm=settings.jwt_algorithm)


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def order_service() -> MagicMock:
    return MagicMock(spec=OrderService)


@pytest.fixture
def app(mock_gateway, order_service):
    application = create_app()
    application.state.gateway = mock_gateway
    application.state.state_machine = MagicMock(spec=OrderStateMachine)
    application.dependency_overrides[get_order_service] = lambda: order_service
    return application


@pytest.fixture
def as_actor(app):
    """Authenticate every request as the given actor."""

    def login(actor) -> TestClient:
        app.dependency_overrides[get_current_actor] = lambda: actor
        return TestClient(app)

    return login


@pytest.fixture
def order_body() -> dict:
    return {
        "items": [{"clothing_item_id": str(uuid4()), "quantity": 2}],
        "pickup_date": "2026-10-20T09:00:00Z",
        "notes": "Fold the shirts",
        "floor": "3",
    }


# ============================================================================
# Student Endpoint Tests
# ============================================================================


class TestStudentEndpoints:
    def test_place_order(self, as_actor, student, order_service, make_order_view, order_body):
        order_service.place_order.return_value = make_order_view()

        response = as_actor(student).post(f"{API}/orders", json=order_body)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["total_price"] == 30.0
        assert data["student"]["full_name"] == "Asha Verma"
        actor, request = order_service.place_order.await_args.args
        assert actor == student
        assert isinstance(request, OrderCreateRequest)
        assert request.items[0].quantity == 2

    def test_empty_basket_is_validation_error(self, as_actor, student, order_body):
        order_body["items"] = []

        response = as_actor(student).post(f"{API}/orders", json=order_body)

        assert response.status_code == 422
        assert response.json()["error"] == "RequestValidationError"

    def test_worker_cannot_place_order(self, as_actor, worker, order_service, order_body):
        response = as_actor(worker).post(f"{API}/orders", json=order_body)

        assert response.status_code == 403
        assert response.json() == {
            "detail": "Insufficient permissions",
            "error": "OrderPermissionError",
        }
        order_service.place_order.assert_not_called()

    def test_list_my_orders(self, as_actor, student, order_service, make_order_view):
        order_service.list_my_orders.return_value = [make_order_view(), make_order_view()]

        response = as_actor(student).get(f"{API}/orders/mine")

        assert response.status_code == 200
        assert len(response.json()) == 2

    def test_cancel_order(self, as_actor, student, order_service, make_order_view):
        order_service.cancel_my_order.return_value = make_order_view(status="cancelled")
        order_id = uuid4()

        response = as_actor(student).post(f"{API}/orders/{order_id}/cancel")

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        order_service.cancel_my_order.assert_awaited_once_with(order_id, student)

    def test_cancel_accepted_order_conflicts(self, as_actor, student, order_service):
        order_service.cancel_my_order.side_effect = StateTransitionError(
            "Orders can only be cancelled while pending",
            current_state=OrderStatus.ACCEPTED,
            target_state=OrderStatus.CANCELLED,
        )

        response = as_actor(student).post(f"{API}/orders/{uuid4()}/cancel")

        assert response.status_code == 409
        assert response.json()["error"] == "StateTransitionError"

    def test_catalog(self, as_actor, student, order_service):
        order_service.list_catalog.return_value = [
            ClothingItemSummary(id=uuid4(), name="Kurta", price=20, gender="female")
        ]

        response = as_actor(student).get(f"{API}/catalog", params={"gender": "female"})

        assert response.status_code == 200
        assert response.json()[0]["name"] == "Kurta"
        order_service.list_catalog.assert_awaited_once_with("female")


# ============================================================================
# Worker Endpoint Tests
# ============================================================================


class TestWorkerEndpoints:
    def test_pending_queue(self, as_actor, worker, order_service, make_order_view):
        order_service.pending_queue.return_value = [make_order_view()]

        response = as_actor(worker).get(f"{API}/orders/pending")

        assert response.status_code == 200
        assert [o["status"] for o in response.json()] == ["pending"]

    def test_active_queue(self, as_actor, worker, order_service):
        order_service.active_queue.return_value = []

        response = as_actor(worker).get(f"{API}/orders/active")

        assert response.status_code == 200
        assert response.json() == []

    def test_assigned_orders(self, as_actor, worker, order_service, make_order_view):
        order_service.list_assigned_orders.return_value = [
            make_order_view(status="processing", worker_id=str(worker.id))
        ]

        response = as_actor(worker).get(
            f"{API}/orders/assigned", params=[("status", "processing"), ("status", "accepted")]
        )

        assert response.status_code == 200
        assert response.json()[0]["worker_id"] == str(worker.id)
        order_service.list_assigned_orders.assert_awaited_once_with(
            worker, [OrderStatus.PROCESSING, OrderStatus.ACCEPTED]
        )

    def test_student_cannot_read_queue(self, as_actor, student):
        response = as_actor(student).get(f"{API}/orders/pending")

        assert response.status_code == 403

    def test_accept_order(self, as_actor, worker, order_service, make_order_view):
        order_service.accept_order.return_value = make_order_view(
            status="accepted", worker_id=str(worker.id)
        )
        order_id = uuid4()

        response = as_actor(worker).post(f"{API}/orders/{order_id}/accept")

        assert response.status_code == 200
        assert response.json()["worker_id"] == str(worker.id)
        order_service.accept_order.assert_awaited_once_with(order_id, worker)

    def test_update_status_with_notes(self, as_actor, worker, order_service, make_order_view):
        order_service.update_status.return_value = make_order_view(
            status="completed",
            worker_id=str(worker.id),
            delivery_date="2026-10-21T10:00:00+00:00",
            notes="Left at reception",
        )
        order_id = uuid4()

        response = as_actor(worker).patch(
            f"{API}/orders/{order_id}/status",
            json={"status": "completed", "notes": "Left at reception"},
        )

        assert response.status_code == 200
        assert response.json()["delivery_date"] is not None
        order_service.update_status.assert_awaited_once_with(
            order_id, OrderStatus.COMPLETED, worker, notes="Left at reception"
        )

    def test_unknown_status_rejected(self, as_actor, worker):
        response = as_actor(worker).patch(
            f"{API}/orders/{uuid4()}/status", json={"status": "washing"}
        )

        assert response.status_code == 422

    def test_invalid_order_id_rejected(self, as_actor, worker):
        response = as_actor(worker).post(f"{API}/orders/not-a-uuid/accept")

        assert response.status_code == 422


# ============================================================================
# Error Mapping Tests
# ============================================================================


class TestErrorMapping:
    @pytest.mark.parametrize(
        "error, status_code",
        [
            (OrderNotFoundError("Order not found"), 404),
            (OrderValidationError("Unknown clothing items"), 422),
            (GatewayError("Query failed"), 503),
            (
                StateTransitionError(
                    "Invalid transition",
                    current_state=OrderStatus.COMPLETED,
                    target_state=OrderStatus.PROCESSING,
                ),
                409,
            ),
        ],
    )
    def test_domain_errors(self, as_actor, worker, order_service, error, status_code):
        order_service.update_status.side_effect = error

        response = as_actor(worker).patch(
            f"{API}/orders/{uuid4()}/status", json={"status": "processing"}
        )

        assert response.status_code == status_code
        assert response.json() == {"detail": error.message, "error": type(error).__name__}

    def test_request_id_header(self, as_actor, worker, order_service):
        order_service.pending_queue.return_value = []

        response = as_actor(worker).get(
            f"{API}/orders/pending", headers={"X-Request-ID": "req-123"}
        )

        assert response.headers["X-Request-ID"] == "req-123"


# ============================================================================
# Authentication Tests
# ============================================================================


class TestAuthentication:
    def test_missing_token(self, app):
        response = TestClient(app).get(f"{API}/orders/mine")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json()["error"] == "IdentityResolutionError"

    def test_valid_token_resolves_profile(
        self, app, mock_gateway, order_service, make_student_row, student
    ):
        mock_gateway.query.return_value = [make_student_row()]
        order_service.list_my_orders.return_value = []
        token = make_token(str(student.id))

        response = TestClient(app).get(
            f"{API}/orders/mine", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 200
        mock_gateway.query.assert_awaited_once_with(
            "profiles", filters={"id": str(student.id)}
        )
        actor = order_service.list_my_orders.await_args.args[0]
        assert actor.id == student.id
        assert actor.full_name == "Asha Verma"

    def test_role_comes_from_profile(self, app, mock_gateway, make_student_row, student):
        mock_gateway.query.return_value = [make_student_row()]
        token = make_token(str(student.id), role="worker")

        response = TestClient(app).get(
            f"{API}/orders/pending", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 403

    def test_tampered_token(self, app, student):
        token = make_token(str(student.id)) + "x"

        response = TestClient(app).get(
            f"{API}/orders/mine", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401

    def test_wrong_audience(self, app, student):
        token = make_token(str(student.id), aud="anon")

        response = TestClient(app).get(
            f"{API}/orders/mine", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401

    def test_unknown_profile(self, app, mock_gateway, student):
        mock_gateway.query.return_value = []

        response = TestClient(app).get(
            f"{API}/orders/mine",
            headers={"Authorization": f"Bearer {make_token(str(student.id))}"},
        )

        assert response.status_code == 401

    def test_profile_lookup_failure(self, app, mock_gateway, student):
        mock_gateway.query.side_effect = GatewayError("Query failed")

        response = TestClient(app).get(
            f"{API}/orders/mine",
            headers={"Authorization": f"Bearer {make_token(str(student.id))}"},
        )

        assert response.status_code == 503


# ============================================================================
# Live Queue WebSocket Tests
# ============================================================================


class TestLiveQueue:
    @staticmethod
    def route_queries(profile: dict, orders: list):
        def respond(collection, **kwargs):
            return [profile] if collection == "profiles" else orders

        return respond

    def test_worker_receives_snapshots(
        self, app, mock_gateway, make_student_row, make_order_row, worker
    ):
        profile = make_student_row(id=str(worker.id), role="worker", full_name="Ravi Kumar")
        mock_gateway.query.side_effect = self.route_queries(profile, [make_order_row()])
        token = make_token(str(worker.id))

        with TestClient(app).websocket_connect(f"{API}/orders/live?token={token}") as ws:
            first = ws.receive_json()
            ws.send_text("refresh")
            second = ws.receive_json()

        assert first["type"] == "snapshot"
        assert len(first["pending"]) == 1
        assert first["refreshed_at"] is not None
        assert second["type"] == "snapshot"
        mock_gateway.subscribe.assert_awaited_once()

    def test_fetch_failure_sends_error_notice(
        self, app, mock_gateway, make_student_row, worker
    ):
        profile = make_student_row(id=str(worker.id), role="worker")

        def respond(collection, **kwargs):
            if collection == "profiles":
                return [profile]
            raise GatewayError("Query failed")

        mock_gateway.query.side_effect = respond
        token = make_token(str(worker.id))

        with TestClient(app).websocket_connect(f"{API}/orders/live?token={token}") as ws:
            messages = [ws.receive_json() for _ in range(3)]

        errors = [m for m in messages if m["type"] == "error"]
        assert {e["error"]["view"] for e in errors} == {"pending", "active"}
        assert errors[0]["error"]["title"] == "Error"

    def test_student_is_rejected(self, app, mock_gateway, make_student_row, student):
        mock_gateway.query.return_value = [make_student_row()]
        token = make_token(str(student.id))

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with TestClient(app).websocket_connect(f"{API}/orders/live?token={token}"):
                pass

        assert exc_info.value.code == 1008

    def test_invalid_token_is_rejected(self, app):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with TestClient(app).websocket_connect(f"{API}/orders/live?token=bogus"):
                pass

        assert exc_info.value.code == 1008
