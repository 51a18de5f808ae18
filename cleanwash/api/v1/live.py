"""
Live order queue WebSocket for worker dashboards.

Each connection owns one ``LiveOrdersView``. The worker receives a
``snapshot`` message with both queues after every refresh and an ``error``
message when a queue could not be reloaded. Sending ``refresh`` forces a
reload. The view and its change feed subscription are released when the
socket disconnects.
"""

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from cleanwash.api.deps import get_gateway, resolve_actor
from cleanwash.core.exceptions import GatewayError, IdentityResolutionError
from cleanwash.core.logging import get_logger
from cleanwash.database.models.profile import UserRole
from cleanwash.schemas.orders import OrderQueues
from cleanwash.services.orders.live_view import LiveNotice, LiveOrdersView
from cleanwash.services.orders.repository import OrderRepository

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.websocket("/live")
async def live_orders(websocket: WebSocket, token: str = Query(...)) -> None:
    gateway = get_gateway(websocket)

    try:
        actor = await resolve_actor(token, gateway)
    except (IdentityResolutionError, GatewayError) as e:
        logger.warning("Live connection rejected", error=str(e))
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    if actor.role != UserRole.WORKER:
        logger.warning("Live connection rejected, not a worker", user_id=str(actor.id))
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    async def send_snapshot(snapshot: OrderQueues) -> None:
        await websocket.send_json({"type": "snapshot", **snapshot.model_dump(mode="json")})

    async def send_notice(notice: LiveNotice) -> None:
        await websocket.send_json(
            {
                "type": "error",
                "error": {
                    "title": notice.title,
                    "description": notice.description,
                    "view": notice.view,
                },
            }
        )

    view = LiveOrdersView(
        OrderRepository(gateway),
        gateway,
        on_update=send_snapshot,
        on_error=send_notice,
    )
    async with view:
        logger.info("Live connection opened", worker_id=str(actor.id))
        try:
            while True:
                message = await websocket.receive_text()
                if message.strip().lower() == "refresh":
                    await view.refresh()
        except WebSocketDisconnect:
            logger.info("Live connection closed", worker_id=str(actor.id))
