"""Order state machine implementation with transition validation.

This module implements the OrderStateMachine class for moving laundry orders
through their lifecycle. Each transition is validated against the status
graph, its field changes are written as a single keyed update through the
data gateway, and the caller receives an updated copy of the order view.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Set

from cleanwash.core.config import get_settings
from cleanwash.core.exceptions import (
    IdentityResolutionError,
    OrderNotFoundError,
    OrderValidationError,
)
from cleanwash.core.logging import get_logger
from cleanwash.database.gateway import DataGateway
from cleanwash.schemas.orders import Actor, OrderView
from cleanwash.services.notifications.service import NotificationService
from cleanwash.services.orders.enums import (
    OrderStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)

logger = get_logger(__name__)

PatchBuilder = Callable[[OrderView, Optional[Actor], Optional[str]], Dict[str, Any]]


class StateTransitionError(OrderValidationError):
    """Raised when an invalid state transition is attempted."""

    def __init__(
        self,
        message: str,
        current_state: OrderStatus,
        target_state: OrderStatus,
        **context: Any,
    ):
        super().__init__(
            message,
            current_state=current_state.value,
            target_state=target_state.value,
            **context,
        )
        self.current_state = current_state
        self.target_state = target_state


class OrderStateMachine:
    """State machine for laundry order lifecycle transitions.

    Field changes per target status are produced by patch builders; work
    that must only happen after a successful write (the completion email)
    is registered as an after-effect.
    """

    def __init__(
        self,
        gateway: DataGateway,
        notifier: Optional[NotificationService] = None,
        compare_and_swap: Optional[bool] = None,
    ):
        """Initialize state machine.

        Args:
            gateway: Data gateway used for the status write
            notifier: Completion notifier, no emails are sent when omitted
            compare_and_swap: Also match the expected prior status when
                writing, defaults to settings
        """
        self.gateway = gateway
        self.notifier = notifier
        self.compare_and_swap = (
            get_settings().order_transition_cas
            if compare_and_swap is None
            else compare_and_swap
        )
        self._patch_builders: Dict[OrderStatus, PatchBuilder] = {
            OrderStatus.ACCEPTED: self._patch_accepted,
            OrderStatus.COMPLETED: self._patch_completed,
        }
        self._after_effects: Dict[OrderStatus, Callable[[OrderView], None]] = {
            OrderStatus.COMPLETED: self._schedule_completion_notice,
        }
        self._notification_tasks: Set[asyncio.Task] = set()

    def validate_transition(self, order: OrderView, target_status: OrderStatus) -> bool:
        """Validate that ``target_status`` is a legal successor of the order's status.

        Raises:
            StateTransitionError: If the transition is invalid
        """
        current_status = order.status
        if not validate_order_status_transition(current_status, target_status):
            allowed = get_allowed_order_transitions(current_status)
            if current_status.is_terminal():
                message = f"Order is already {current_status.value}"
            else:
                message = (
                    f"Invalid transition from {current_status.value} to "
                    f"{target_status.value}"
                )
            raise StateTransitionError(
                message,
                current_state=current_status,
                target_state=target_status,
                order_id=str(order.id),
                allowed_transitions=sorted(s.value for s in allowed),
            )
        return True

    def get_allowed_transitions(self, order: OrderView) -> Set[OrderStatus]:
        """Get statuses the order can move to next."""
        return get_allowed_order_transitions(order.status)

    def can_cancel(self, order: OrderView) -> bool:
        """Check if the order can still be cancelled."""
        return order.status.can_cancel()

    async def apply_transition(
        self,
        order: OrderView,
        target_status: OrderStatus,
        actor: Optional[Actor] = None,
        notes: Optional[str] = None,
    ) -> OrderView:
        """Apply a status transition and persist it.

        Args:
            order: Current view of the order, left unmodified
            target_status: Status to move to
            actor: User performing the transition, required for accepting
            notes: Delivery notes, applied when completing

        Returns:
            Updated copy of the order view

        Raises:
            StateTransitionError: If the transition is not allowed, or the
                order changed underneath a compare-and-swap write
            IdentityResolutionError: If accepting without an actor
            OrderNotFoundError: If no order row was updated
            GatewayError: If the write fails
        """
        self.validate_transition(order, target_status)

        builder = self._patch_builders.get(target_status)
        patch: Dict[str, Any] = builder(order, actor, notes) if builder else {}

        match: Dict[str, Any] = {"id": str(order.id)}
        if self.compare_and_swap:
            match["status"] = order.status.value

        updated_rows = await self.gateway.update(
            "orders", match, {"status": target_status.value, **patch}
        )
        if updated_rows == 0:
            await self._raise_missed_update(order, target_status)

        updated = order.model_copy(update={"status": target_status, **patch})

        logger.info(
            "Order status changed",
            order_id=str(order.id),
            transition=f"{order.status.value}->{target_status.value}",
            actor_id=str(actor.id) if actor else None,
        )

        effect = self._after_effects.get(target_status)
        if effect:
            effect(updated)

        return updated

    async def wait_for_notifications(self) -> None:
        """Wait for in-flight completion notifications to finish."""
        if self._notification_tasks:
            await asyncio.gather(*list(self._notification_tasks), return_exceptions=True)

    # Patch builders

    def _patch_accepted(
        self, order: OrderView, actor: Optional[Actor], notes: Optional[str]
    ) -> Dict[str, Any]:
        if actor is None or actor.id is None:
            raise IdentityResolutionError(
                "Accepting an order requires an authenticated worker",
                order_id=str(order.id),
            )
        return {"worker_id": actor.id}

    def _patch_completed(
        self, order: OrderView, actor: Optional[Actor], notes: Optional[str]
    ) -> Dict[str, Any]:
        patch: Dict[str, Any] = {"delivery_date": datetime.now(timezone.utc)}
        if notes and notes.strip():
            patch["notes"] = notes.strip()
        return patch

    # After-effects

    def _schedule_completion_notice(self, order: OrderView) -> None:
        if self.notifier is None:
            logger.debug("No notifier configured, skipping email", order_id=str(order.id))
            return

        task = asyncio.create_task(self.notifier.notify_order_completed(order))
        self._notification_tasks.add(task)
        task.add_done_callback(self._on_notification_done)

    def _on_notification_done(self, task: asyncio.Task) -> None:
        self._notification_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Completion notification task failed",
                error=str(error),
                error_type=type(error).__name__,
            )

    async def _raise_missed_update(
        self, order: OrderView, target_status: OrderStatus
    ) -> None:
        if self.compare_and_swap:
            rows = await self.gateway.query("orders", filters={"id": str(order.id)})
            if rows:
                raise StateTransitionError(
                    "Order status changed before the update was applied",
                    current_state=OrderStatus.from_string(rows[0]["status"]),
                    target_state=target_status,
                    order_id=str(order.id),
                    expected_state=order.status.value,
                )
        raise OrderNotFoundError("Order not found", order_id=str(order.id))
