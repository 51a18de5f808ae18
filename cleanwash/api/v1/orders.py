"""
Order API endpoints for students and workers.

Students place, list and cancel their own orders. Workers read the pending
and active queues and their own assigned orders, accept orders and advance
their status. Domain errors raised by the order service are translated to
HTTP responses by the application's exception handlers.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request, status

from cleanwash.api.deps import CurrentStudent, CurrentWorker, OrderServiceDep
from cleanwash.api.rate_limit import WRITE_LIMIT, limiter
from cleanwash.core.logging import get_logger
from cleanwash.schemas.orders import (
    OrderCreateRequest,
    OrderStatusUpdate,
    OrderView,
)
from cleanwash.services.orders.enums import OrderStatus

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "",
    response_model=OrderView,
    status_code=status.HTTP_201_CREATED,
    summary="Place an order",
)
@limiter.limit(WRITE_LIMIT)
async def place_order(
    request: Request,
    payload: OrderCreateRequest,
    actor: CurrentStudent,
    service: OrderServiceDep,
) -> OrderView:
    """Place a pending order from the student's basket."""
    return await service.place_order(actor, payload)


@router.get(
    "/mine",
    response_model=list[OrderView],
    summary="List my orders",
)
async def list_my_orders(actor: CurrentStudent, service: OrderServiceDep) -> list[OrderView]:
    return await service.list_my_orders(actor)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderView,
    summary="Cancel a pending order",
)
@limiter.limit(WRITE_LIMIT)
async def cancel_order(
    request: Request,
    order_id: UUID,
    actor: CurrentStudent,
    service: OrderServiceDep,
) -> OrderView:
    """Cancel one of the student's own orders before a worker accepts it."""
    return await service.cancel_my_order(order_id, actor)


@router.get(
    "/pending",
    response_model=list[OrderView],
    summary="Pending order queue",
)
async def pending_orders(actor: CurrentWorker, service: OrderServiceDep) -> list[OrderView]:
    return await service.pending_queue(actor)


@router.get(
    "/active",
    response_model=list[OrderView],
    summary="Active order queue",
)
async def active_orders(actor: CurrentWorker, service: OrderServiceDep) -> list[OrderView]:
    return await service.active_queue(actor)


@router.get(
    "/assigned",
    response_model=list[OrderView],
    summary="Orders assigned to me",
)
async def assigned_orders(
    actor: CurrentWorker,
    service: OrderServiceDep,
    status_filter: Optional[list[OrderStatus]] = Query(None, alias="status"),
) -> list[OrderView]:
    """List the worker's own orders, including completed history."""
    return await service.list_assigned_orders(actor, status_filter)


@router.post(
    "/{order_id}/accept",
    response_model=OrderView,
    summary="Accept a pending order",
)
@limiter.limit(WRITE_LIMIT)
async def accept_order(
    request: Request,
    order_id: UUID,
    actor: CurrentWorker,
    service: OrderServiceDep,
) -> OrderView:
    """Claim a pending order for the authenticated worker."""
    return await service.accept_order(order_id, actor)


@router.patch(
    "/{order_id}/status",
    response_model=OrderView,
    summary="Update order status",
)
@limiter.limit(WRITE_LIMIT)
async def update_order_status(
    request: Request,
    order_id: UUID,
    payload: OrderStatusUpdate,
    actor: CurrentWorker,
    service: OrderServiceDep,
) -> OrderView:
    """
    Move an order to its next status.

    Completing an order records the delivery time, applies the optional
    notes and emails the student in the background.
    """
    logger.info(
        "Status update requested",
        order_id=str(order_id),
        target_status=payload.status.value,
        worker_id=str(actor.id),
    )
    return await service.update_status(order_id, payload.status, actor, notes=payload.notes)
