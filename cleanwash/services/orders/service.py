"""
Order service exposing role-scoped order actions.

This module implements the OrderService class, the entry point used by the
API layer. Students browse the catalog, place orders, follow their history
and cancel orders nobody has picked up yet. Workers read the pending and
active queues, accept orders and advance them through the lifecycle.
"""

from typing import Optional, Union
from uuid import UUID

from cleanwash.core.logging import get_logger
from cleanwash.core.exceptions import OrderNotFoundError, OrderPermissionError
from cleanwash.database.models.profile import UserRole
from cleanwash.schemas.orders import (
    Actor,
    ClothingItemSummary,
    OrderCreateRequest,
    OrderView,
)
from cleanwash.services.orders.enums import OrderStatus
from cleanwash.services.orders.repository import OrderRepository
from cleanwash.services.orders.state_machine import (
    OrderStateMachine,
    StateTransitionError,
)

logger = get_logger(__name__)


class OrderService:
    """
    Role-scoped order operations.

    Attributes:
        repository: Order repository for reads and placement
        state_machine: State machine for status changes
    """

    def __init__(self, repository: OrderRepository, state_machine: OrderStateMachine):
        self.repository = repository
        self.state_machine = state_machine

    # Student actions

    async def list_catalog(self, gender: Optional[str] = None) -> list[ClothingItemSummary]:
        return await self.repository.list_catalog(gender)

    async def place_order(self, actor: Actor, request: OrderCreateRequest) -> OrderView:
        """
        Place an order from a student's basket.

        Raises:
            OrderPermissionError: If the actor is not a student
            OrderValidationError: If the basket is invalid
        """
        self._require_role(actor, UserRole.STUDENT, "place orders")

        order = await self.repository.create_order(
            student_id=actor.id,
            items=[item.model_dump() for item in request.items],
            pickup_date=request.pickup_date,
            notes=request.notes or None,
            floor=request.floor,
        )
        logger.info(
            "Order placed",
            order_id=str(order.id),
            student_id=str(actor.id),
            total_price=str(order.total_price),
        )
        return order

    async def list_my_orders(self, actor: Actor) -> list[OrderView]:
        self._require_role(actor, UserRole.STUDENT, "view their order history")
        return await self.repository.fetch_for_student(actor.id)

    async def cancel_my_order(self, order_id: Union[UUID, str], actor: Actor) -> OrderView:
        """
        Cancel one of the actor's own orders while it is still pending.

        Raises:
            OrderNotFoundError: If the order does not exist
            OrderPermissionError: If the order belongs to another student
            StateTransitionError: If the order has already been picked up
        """
        self._require_role(actor, UserRole.STUDENT, "cancel orders")
        order = await self._get_order(order_id)

        if order.student_id != actor.id:
            raise OrderPermissionError(
                "Order belongs to another student",
                order_id=str(order_id),
                actor_id=str(actor.id),
            )
        if order.status != OrderStatus.PENDING:
            raise StateTransitionError(
                "Only pending orders can be cancelled",
                current_state=order.status,
                target_state=OrderStatus.CANCELLED,
                order_id=str(order.id),
            )

        return await self.state_machine.apply_transition(
            order, OrderStatus.CANCELLED, actor=actor
        )

    # Worker actions

    async def pending_queue(self, actor: Actor) -> list[OrderView]:
        self._require_role(actor, UserRole.WORKER, "view the order queues")
        return await self.repository.fetch_pending()

    async def active_queue(self, actor: Actor) -> list[OrderView]:
        self._require_role(actor, UserRole.WORKER, "view the order queues")
        return await self.repository.fetch_active()

    async def list_assigned_orders(
        self, actor: Actor, statuses: Optional[list[OrderStatus]] = None
    ) -> list[OrderView]:
        """List orders the acting worker has accepted, optionally by status."""
        self._require_role(actor, UserRole.WORKER, "view assigned orders")
        return await self.repository.fetch_for_worker(actor.id, statuses or None)

    async def accept_order(self, order_id: Union[UUID, str], actor: Actor) -> OrderView:
        """Claim a pending order for the acting worker."""
        return await self.update_status(order_id, OrderStatus.ACCEPTED, actor)

    async def update_status(
        self,
        order_id: Union[UUID, str],
        target_status: OrderStatus,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> OrderView:
        """
        Move an order to ``target_status``.

        Raises:
            OrderPermissionError: If the actor is not a worker
            OrderNotFoundError: If the order does not exist
            StateTransitionError: If the transition is not allowed
        """
        self._require_role(actor, UserRole.WORKER, "update order status")
        order = await self._get_order(order_id)
        return await self.state_machine.apply_transition(
            order, target_status, actor=actor, notes=notes
        )

    async def _get_order(self, order_id: Union[UUID, str]) -> OrderView:
        order = await self.repository.get_order(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        return order

    @staticmethod
    def _require_role(actor: Actor, role: UserRole, action: str) -> None:
        if actor.role != role:
            raise OrderPermissionError(
                f"Only {role.value}s can {action}",
                actor_id=str(actor.id),
                role=actor.role.value,
            )
