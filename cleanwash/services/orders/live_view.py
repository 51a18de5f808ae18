"""
Live worker queues kept in sync with the order change feed.

A ``LiveOrdersView`` holds the pending and active snapshots for one worker
dashboard. It refreshes both once on start and again on every change event
for the ``orders`` collection, with an optional polling loop as a fallback
for missed events. Each view owns its subscription; acquire it with
``async with`` so the subscription is released when the dashboard goes away.
"""

import asyncio
import inspect
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Union

from cleanwash.core.config import get_settings
from cleanwash.core.exceptions import GatewayError
from cleanwash.core.logging import get_logger
from cleanwash.database.gateway import DataGateway
from cleanwash.realtime.change_feed import WILDCARD, ChangeEvent, Subscription
from cleanwash.schemas.orders import OrderQueues, OrderView
from cleanwash.services.orders.repository import OrderRepository

logger = get_logger(__name__)


@dataclass(frozen=True)
class LiveNotice:
    """User-visible notice about a failed refresh."""

    title: str
    description: str
    view: Optional[str] = None


UpdateListener = Callable[[OrderQueues], Union[None, Awaitable[None]]]
ErrorListener = Callable[[LiveNotice], Union[None, Awaitable[None]]]

FETCH_FAILED_NOTICES = {
    "pending": "Could not load pending orders. Please try again later.",
    "active": "Could not load active orders. Please try again later.",
}


async def _call(listener: Callable[[Any], Any], payload: Any) -> None:
    result = listener(payload)
    if inspect.isawaitable(result):
        await result


class LiveOrdersView:
    """Pending and active order snapshots for one worker dashboard."""

    def __init__(
        self,
        repository: OrderRepository,
        gateway: DataGateway,
        poll_interval: Optional[float] = None,
        on_update: Optional[UpdateListener] = None,
        on_error: Optional[ErrorListener] = None,
    ):
        """
        Initialize the view.

        Args:
            repository: Order repository used for fetches
            gateway: Gateway providing the change feed subscription
            poll_interval: Seconds between fallback refreshes, 0 disables,
                defaults to settings
            on_update: Called with the snapshot after every refresh
            on_error: Called with a notice when a fetch fails
        """
        self.repository = repository
        self.gateway = gateway
        self.poll_interval = (
            get_settings().live_view_poll_seconds
            if poll_interval is None
            else poll_interval
        )

        self.pending: list[OrderView] = []
        self.active: list[OrderView] = []
        self.loading = {"pending": True, "active": True}
        self.refreshed_at: Optional[datetime] = None

        self._update_listeners: list[UpdateListener] = [on_update] if on_update else []
        self._error_listeners: list[ErrorListener] = [on_error] if on_error else []
        self._subscription: Optional[Subscription] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    def add_listener(self, listener: UpdateListener) -> None:
        """Register another snapshot listener."""
        self._update_listeners.append(listener)

    def snapshot(self) -> OrderQueues:
        """Current pending and active queues."""
        return OrderQueues(
            pending=list(self.pending),
            active=list(self.active),
            refreshed_at=self.refreshed_at,
        )

    async def start(self) -> None:
        """Load both queues, then follow the change feed."""
        if self._started:
            return
        self._started = True

        await self.refresh()

        try:
            self._subscription = await self.gateway.subscribe(
                "orders", self._on_change, events=(WILDCARD,)
            )
        except GatewayError as e:
            logger.error("Live view subscription failed", error=str(e))
            await self._notify_error(
                LiveNotice(
                    title="Live updates unavailable",
                    description="Orders will refresh periodically instead.",
                )
            )

        if self.poll_interval and self.poll_interval > 0:
            self._poll_task = asyncio.create_task(self._poll())

        logger.info(
            "Live view started",
            subscribed=self._subscription is not None,
            poll_interval=self.poll_interval,
        )

    async def refresh(self) -> OrderQueues:
        """
        Re-fetch both queues.

        A failed fetch keeps that queue's previous snapshot and emits a
        notice; the other queue is still refreshed.
        """
        for name, fetch in (
            ("pending", self.repository.fetch_pending),
            ("active", self.repository.fetch_active),
        ):
            try:
                views = await fetch()
            except GatewayError as e:
                logger.error("Live view fetch failed", view=name, error=str(e))
                await self._notify_error(
                    LiveNotice(
                        title="Error",
                        description=FETCH_FAILED_NOTICES[name],
                        view=name,
                    )
                )
            else:
                setattr(self, name, views)
                self.refreshed_at = datetime.now(timezone.utc)
            finally:
                self.loading[name] = False

        snapshot = self.snapshot()
        for listener in list(self._update_listeners):
            try:
                await _call(listener, snapshot)
            except Exception as e:
                logger.error(
                    "Live view listener failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return snapshot

    async def stop(self) -> None:
        """Release the subscription and stop polling."""
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

        if self._subscription is not None:
            subscription, self._subscription = self._subscription, None
            await self.gateway.unsubscribe(subscription)

        if self._started:
            self._started = False
            logger.info("Live view stopped")

    async def __aenter__(self) -> "LiveOrdersView":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def _on_change(self, event: ChangeEvent) -> None:
        logger.debug(
            "Order change received",
            event_type=event.event_type.value,
            order_id=event.row.get("id"),
        )
        await self.refresh()

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.refresh()
            except Exception as e:
                logger.error(
                    "Live view poll failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )

    async def _notify_error(self, notice: LiveNotice) -> None:
        for listener in list(self._error_listeners):
            try:
                await _call(listener, notice)
            except Exception as e:
                logger.error(
                    "Live view error listener failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
