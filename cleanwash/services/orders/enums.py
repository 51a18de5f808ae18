"""Order status enum and lifecycle transition rules.

This module defines the laundry order status values and the transition graph
that the order state machine enforces, together with the status groupings
used by the worker queues.
"""

from enum import Enum
from typing import Dict, FrozenSet, Set


class OrderStatus(str, Enum):
    """Laundry order lifecycle status.

    Valid transitions:
    - PENDING -> ACCEPTED, CANCELLED
    - ACCEPTED -> PROCESSING, CANCELLED
    - PROCESSING -> COMPLETED, CANCELLED
    - COMPLETED -> (terminal state)
    - CANCELLED -> (terminal state)
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert string to OrderStatus enum.

        Args:
            value: String representation of status

        Returns:
            OrderStatus enum value

        Raises:
            ValueError: If value is not a valid status
        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid_values = ", ".join([s.value for s in cls])
            raise ValueError(
                f"Invalid order status: {value}. "
                f"Valid values are: {valid_values}"
            )

    def is_terminal(self) -> bool:
        """Check if no transition leaves this status."""
        return self in TERMINAL_STATUSES

    def can_cancel(self) -> bool:
        """Check if order can be cancelled from current status."""
        return OrderStatus.CANCELLED in ORDER_STATUS_TRANSITIONS[self]


ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ACCEPTED, OrderStatus.CANCELLED}),
    OrderStatus.ACCEPTED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED}
)

# Queue groupings for the worker dashboard
PENDING_STATUSES: FrozenSet[OrderStatus] = frozenset({OrderStatus.PENDING})
ACTIVE_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.ACCEPTED, OrderStatus.PROCESSING}
)


def validate_order_status_transition(
    current: OrderStatus, target: OrderStatus
) -> bool:
    """Check whether ``target`` is a legal successor of ``current``.

    A transition to the same status is never legal.
    """
    return target in ORDER_STATUS_TRANSITIONS.get(current, frozenset())


def get_allowed_order_transitions(current: OrderStatus) -> Set[OrderStatus]:
    """Return the set of statuses reachable in one step from ``current``."""
    return set(ORDER_STATUS_TRANSITIONS.get(current, frozenset()))
