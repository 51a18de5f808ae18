"""
Row-level change feed over Redis pub/sub.

The data gateway publishes one event per committed insert or update, and
live views subscribe to a collection to learn that their snapshot is stale.
Each subscription owns its own pub/sub connection and listener task and is
released explicitly; nothing here is process-global.
"""

import asyncio
import inspect
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, ValidationError
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from cleanwash.core.exceptions import GatewayError
from cleanwash.core.logging import get_logger
from cleanwash.database.base import serialize_value
from cleanwash.realtime.redis_client import RedisClient

logger = get_logger(__name__)

WILDCARD = "*"


class ChangeEventType(str, Enum):
    """Kind of row mutation carried by a change event."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """A committed row mutation on one collection."""

    collection: str
    event_type: ChangeEventType
    record: dict[str, Any] = Field(default_factory=dict)
    old_record: Optional[dict[str, Any]] = None
    committed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def row(self) -> dict[str, Any]:
        """Row the event refers to: the old row for deletes, else the new one."""
        if self.event_type == ChangeEventType.DELETE:
            return self.old_record or {}
        return self.record


ChangeCallback = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


def parse_event_mask(
    events: Iterable[Union[str, ChangeEventType]],
) -> frozenset[ChangeEventType]:
    """
    Normalize an event filter to a set of event types.

    ``"*"`` selects every event type.

    Raises:
        ValueError: If an event name is unknown or the filter is empty
    """
    mask: set[ChangeEventType] = set()
    for event in events:
        if event == WILDCARD:
            return frozenset(ChangeEventType)
        mask.add(ChangeEventType(str(event).upper()))
    if not mask:
        raise ValueError("At least one event type is required")
    return frozenset(mask)


def row_matches(row: Mapping[str, Any], row_filter: Optional[Mapping[str, Any]]) -> bool:
    """Check that every filter column equals the row's serialized value."""
    if not row_filter:
        return True
    return all(
        row.get(column) == serialize_value(expected)
        for column, expected in row_filter.items()
    )


class Subscription:
    """
    Handle for one change feed subscription.

    Owns a pub/sub connection and the task that reads from it. Obtained from
    ``ChangeFeed.subscribe`` and released with ``ChangeFeed.unsubscribe``.
    """

    def __init__(
        self,
        collection: str,
        channel: str,
        callback: ChangeCallback,
        events: frozenset[ChangeEventType],
        row_filter: Optional[Mapping[str, Any]],
        pubsub: PubSub,
    ):
        self.id = uuid4().hex
        self.collection = collection
        self.channel = channel
        self.events = events
        self.row_filter = dict(row_filter) if row_filter else None
        self._callback = callback
        self._pubsub = pubsub
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def active(self) -> bool:
        """Check if the listener is still running."""
        return self._task is not None and not self._task.done()

    def accepts(self, event: ChangeEvent) -> bool:
        """Check the event against this subscription's type and row filters."""
        return (
            event.collection == self.collection
            and event.event_type in self.events
            and row_matches(event.row, self.row_filter)
        )

    async def dispatch(self, payload: Union[str, bytes]) -> None:
        """
        Decode one pub/sub payload and hand it to the callback.

        Malformed payloads and callback errors are logged and dropped so one
        bad event cannot stop the listener.
        """
        try:
            event = ChangeEvent.model_validate_json(payload)
        except ValidationError as e:
            logger.warning(
                "Discarding malformed change event",
                channel=self.channel,
                error=str(e),
            )
            return

        if not self.accepts(event):
            return

        try:
            result = self._callback(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                "Change feed callback failed",
                subscription_id=self.id,
                collection=self.collection,
                event_type=event.event_type.value,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def _listen(self) -> None:
        try:
            async for message in self._pubsub.listen():
                if message.get("type") != "message":
                    continue
                await self.dispatch(message["data"])
        except RedisError as e:
            logger.error(
                "Change feed listener stopped",
                subscription_id=self.id,
                channel=self.channel,
                error=str(e),
            )

    def start(self) -> None:
        """Start the listener task."""
        if self._task is None:
            self._task = asyncio.create_task(
                self._listen(), name=f"change-feed-{self.collection}-{self.id}"
            )

    async def close(self) -> None:
        """Stop the listener and release the pub/sub connection. Idempotent."""
        if self._closed:
            return
        self._closed = True

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        try:
            await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.aclose()
        except RedisError as e:
            logger.warning(
                "Failed to release change feed connection",
                subscription_id=self.id,
                error=str(e),
            )


class ChangeFeed:
    """
    Publish and subscribe to row-level change events.

    Events for a collection travel on the channel
    ``{namespace}:changes:{collection}``.
    """

    def __init__(self, redis_client: RedisClient, namespace: str = "cleanwash"):
        self._redis = redis_client
        self._namespace = namespace

    def channel_for(self, collection: str) -> str:
        """Return the pub/sub channel carrying a collection's events."""
        return f"{self._namespace}:changes:{collection}"

    async def publish(self, event: ChangeEvent) -> int:
        """
        Publish a change event.

        Returns:
            Number of listeners that received the event

        Raises:
            GatewayError: If the event cannot be published
        """
        channel = self.channel_for(event.collection)
        try:
            return await self._redis.publish(channel, event.model_dump_json())
        except (RedisError, ConnectionError) as e:
            raise GatewayError(
                "Failed to publish change event",
                collection=event.collection,
                event_type=event.event_type.value,
                error=str(e),
            ) from e

    async def subscribe(
        self,
        collection: str,
        callback: ChangeCallback,
        events: Iterable[Union[str, ChangeEventType]] = (WILDCARD,),
        row_filter: Optional[Mapping[str, Any]] = None,
    ) -> Subscription:
        """
        Open a subscription on a collection.

        Args:
            collection: Collection to observe
            callback: Function or coroutine function receiving each event
            events: Event types to deliver, ``"*"`` for all
            row_filter: Column values an event's row must carry

        Returns:
            Active subscription handle

        Raises:
            GatewayError: If the subscription cannot be opened
        """
        channel = self.channel_for(collection)
        mask = parse_event_mask(events)

        try:
            pubsub = self._redis.pubsub()
            await pubsub.subscribe(channel)
        except (RedisError, ConnectionError) as e:
            raise GatewayError(
                "Failed to subscribe to change feed",
                collection=collection,
                error=str(e),
            ) from e

        subscription = Subscription(
            collection=collection,
            channel=channel,
            callback=callback,
            events=mask,
            row_filter=row_filter,
            pubsub=pubsub,
        )
        subscription.start()

        logger.info(
            "Change feed subscription opened",
            subscription_id=subscription.id,
            collection=collection,
            events=sorted(e.value for e in mask),
            row_filter=subscription.row_filter,
        )
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> None:
        """Release a subscription. Releasing twice is a no-op."""
        await subscription.close()
        logger.info(
            "Change feed subscription released",
            subscription_id=subscription.id,
            collection=subscription.collection,
        )
