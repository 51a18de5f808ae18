"""Tests for order status values and the transition graph."""

import pytest

from cleanwash.services.orders.enums import (
    ACTIVE_STATUSES,
    ORDER_STATUS_TRANSITIONS,
    PENDING_STATUSES,
    TERMINAL_STATUSES,
    OrderStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)


class TestOrderStatus:
    def test_from_string_normalizes(self):
        assert OrderStatus.from_string(" Processing ") == OrderStatus.PROCESSING

    def test_from_string_rejects_unknown(self):
        with pytest.raises(ValueError, match="Invalid order status"):
            OrderStatus.from_string("shipped")

    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {OrderStatus.COMPLETED, OrderStatus.CANCELLED}
        for status in TERMINAL_STATUSES:
            assert status.is_terminal()
            assert ORDER_STATUS_TRANSITIONS[status] == frozenset()

    def test_queue_groupings(self):
        assert PENDING_STATUSES == {OrderStatus.PENDING}
        assert ACTIVE_STATUSES == {OrderStatus.ACCEPTED, OrderStatus.PROCESSING}

    @pytest.mark.parametrize(
        "status,expected",
        [
            (OrderStatus.PENDING, True),
            (OrderStatus.ACCEPTED, True),
            (OrderStatus.PROCESSING, True),
            (OrderStatus.COMPLETED, False),
            (OrderStatus.CANCELLED, False),
        ],
    )
    def test_can_cancel(self, status, expected):
        assert status.can_cancel() is expected


class TestTransitionGraph:
    def test_lifecycle_is_forward_only(self):
        order = [
            OrderStatus.PENDING,
            OrderStatus.ACCEPTED,
            OrderStatus.PROCESSING,
            OrderStatus.COMPLETED,
        ]
        for index, current in enumerate(order):
            for earlier in order[: index + 1]:
                assert not validate_order_status_transition(current, earlier)

    def test_allowed_transitions_from_pending(self):
        assert get_allowed_order_transitions(OrderStatus.PENDING) == {
            OrderStatus.ACCEPTED,
            OrderStatus.CANCELLED,
        }

    def test_allowed_transitions_returns_copy(self):
        allowed = get_allowed_order_transitions(OrderStatus.ACCEPTED)
        allowed.add(OrderStatus.PENDING)

        assert OrderStatus.PENDING not in ORDER_STATUS_TRANSITIONS[OrderStatus.ACCEPTED]
