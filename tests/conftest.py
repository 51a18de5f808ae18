"""
Pytest configuration and shared test fixtures.

This module provides the test environment settings and shared fixtures:
wire-format order rows as the gateway returns them, order views, actors and
a mocked data gateway.
"""

import os

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("APP_LIVE_VIEW_POLL_SECONDS", "0")

from typing import Any, Callable  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402
from uuid import UUID, uuid4  # noqa: E402

import pytest  # noqa: E402

from cleanwash.core.config import get_settings  # noqa: E402
from cleanwash.database.gateway import DataGateway  # noqa: E402
from cleanwash.database.models.profile import UserRole  # noqa: E402
from cleanwash.schemas.orders import Actor, OrderView  # noqa: E402

get_settings.cache_clear()

STUDENT_ID = UUID("11111111-1111-4111-8111-111111111111")
WORKER_ID = UUID("22222222-2222-4222-8222-222222222222")
SHIRT_ID = UUID("33333333-3333-4333-8333-333333333333")


# ============================================================================
# Wire-format rows
# ============================================================================


def student_row(**overrides: Any) -> dict[str, Any]:
    """Profile row as returned by the gateway."""
    row = {
        "id": str(STUDENT_ID),
        "email": "asha@campus.edu",
        "full_name": "Asha Verma",
        "role": "student",
        "gender": "female",
        "hostel": "B",
        "floor": "3",
        "registration_number": "21BCE1001",
        "assigned_hostel": None,
        "washes_left": 38,
        "total_washes": 40,
        "created_at": "2026-10-01T08:00:00+00:00",
        "updated_at": "2026-10-01T08:00:00+00:00",
    }
    row.update(overrides)
    return row


def line_item_row(order_id: str, **overrides: Any) -> dict[str, Any]:
    """Order item row with its embedded catalog item."""
    row = {
        "id": str(uuid4()),
        "order_id": order_id,
        "clothing_item_id": str(SHIRT_ID),
        "quantity": 2,
        "price": 15.0,
        "clothing_item": {
            "id": str(SHIRT_ID),
            "name": "Shirt",
            "price": 15.0,
            "description": "Cotton shirt",
            "gender": "male",
        },
    }
    row.update(overrides)
    return row


def order_row(**overrides: Any) -> dict[str, Any]:
    """Order row with ``student`` and ``items`` embedded, status pending."""
    order_id = overrides.pop("id", str(uuid4()))
    row = {
        "id": order_id,
        "student_id": str(STUDENT_ID),
        "worker_id": None,
        "status": "pending",
        "total_price": 30.0,
        "pickup_date": "2026-10-20T09:00:00+00:00",
        "delivery_date": None,
        "notes": "Fold the shirts",
        "floor": "3",
        "created_at": "2026-10-19T07:30:00+00:00",
        "updated_at": "2026-10-19T07:30:00+00:00",
        "student": student_row(),
        "items": [line_item_row(order_id)],
    }
    row.update(overrides)
    return row


@pytest.fixture
def make_order_row() -> Callable[..., dict[str, Any]]:
    """Factory for embedded order rows."""
    return order_row


@pytest.fixture
def make_student_row() -> Callable[..., dict[str, Any]]:
    return student_row


@pytest.fixture
def make_line_item_row() -> Callable[..., dict[str, Any]]:
    return line_item_row


@pytest.fixture
def make_order_view() -> Callable[..., OrderView]:
    """Factory for order views built from embedded order rows."""

    def factory(**overrides: Any) -> OrderView:
        row = order_row(**overrides)
        return OrderView.model_validate(row)

    return factory


# ============================================================================
# Actors and gateway
# ============================================================================


@pytest.fixture
def student() -> Actor:
    return Actor(id=STUDENT_ID, role=UserRole.STUDENT, full_name="Asha Verma")


@pytest.fixture
def worker() -> Actor:
    return Actor(id=WORKER_ID, role=UserRole.WORKER, full_name="Ravi Kumar")


@pytest.fixture
def mock_gateway() -> MagicMock:
    """
    Data gateway double.

    ``query``, ``insert``, ``update``, ``subscribe`` and ``unsubscribe`` are
    AsyncMocks; by default queries return no rows and updates touch one row.
    """
    gateway = MagicMock(spec=DataGateway)
    gateway.query.return_value = []
    gateway.update.return_value = 1
    return gateway

