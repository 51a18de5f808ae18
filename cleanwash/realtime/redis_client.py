"""
Redis client configuration for the order change feed.

This module provides the async Redis connections used to publish and receive
row-level change events. Publishing and subscriptions use separate connection
pools: every open subscription holds a connection for its whole lifetime, so
sharing one pool would let live views starve the writes that feed them.
"""

from typing import Optional

from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.client import PubSub
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, TimeoutError

from cleanwash.core.config import get_settings
from cleanwash.core.logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    """
    Async Redis client with connection pooling and retry logic.

    Provides the publish and pub/sub primitives the change feed is built on,
    with connection lifecycle management and health checks.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        max_connections: Optional[int] = None,
        max_subscribers: Optional[int] = None,
        socket_connect_timeout: float = 5.0,
        health_check_interval: int = 30,
    ):
        """
        Initialize Redis client with connection pool settings.

        Args:
            url: Redis connection URL (defaults to settings.redis_url)
            max_connections: Maximum publisher pool connections (defaults to settings)
            max_subscribers: Maximum subscriber pool connections (defaults to settings)
            socket_connect_timeout: Socket connection timeout in seconds
            health_check_interval: Health check interval in seconds
        """
        settings = get_settings()
        self._url = url or settings.redis_url
        self._max_connections = max_connections or settings.redis_max_connections
        self._max_subscribers = max_subscribers or settings.redis_max_subscribers
        self._socket_connect_timeout = socket_connect_timeout
        self._health_check_interval = health_check_interval

        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None
        self._subscriber_pool: Optional[ConnectionPool] = None
        self._subscriber_client: Optional[Redis] = None
        self._is_connected = False

    @staticmethod
    def _sanitize_url(url: str) -> str:
        """
        Sanitize Redis URL for logging (remove password).

        Args:
            url: Redis connection URL

        Returns:
            Sanitized URL safe for logging
        """
        if "://" in url:
            protocol, rest = url.split("://", 1)
            if "@" in rest:
                _, host_part = rest.split("@", 1)
                return f"{protocol}://***@{host_part}"
        return url

    @property
    def is_connected(self) -> bool:
        """Check if the client holds an open connection pool."""
        return self._is_connected

    def _create_pool(self, max_connections: int) -> ConnectionPool:
        # Pub/sub listeners block on reads, so no socket read timeout
        return ConnectionPool.from_url(
            self._url,
            max_connections=max_connections,
            socket_connect_timeout=self._socket_connect_timeout,
            health_check_interval=self._health_check_interval,
            retry=Retry(ExponentialBackoff(base=0.1, cap=2.0), retries=3),
            decode_responses=True,
        )

    async def connect(self) -> None:
        """
        Establish Redis connection with retry logic.

        Raises:
            ConnectionError: If connection cannot be established
        """
        if self._is_connected:
            logger.warning("Redis client already connected")
            return

        try:
            self._pool = self._create_pool(self._max_connections)
            self._client = Redis(connection_pool=self._pool)
            self._subscriber_pool = self._create_pool(self._max_subscribers)
            self._subscriber_client = Redis(connection_pool=self._subscriber_pool)

            await self._client.ping()
            self._is_connected = True

            logger.info(
                "Redis connection established",
                url=self._sanitize_url(self._url),
                pool_size=self._max_connections,
                subscriber_pool_size=self._max_subscribers,
            )

        except (ConnectionError, TimeoutError) as e:
            logger.error(
                "Failed to connect to Redis",
                error=str(e),
                url=self._sanitize_url(self._url),
            )
            await self._release()
            raise ConnectionError(f"Redis connection failed: {e}") from e

    async def _release(self) -> None:
        for client in (self._subscriber_client, self._client):
            if client is not None:
                await client.aclose()
        for pool in (self._subscriber_pool, self._pool):
            if pool is not None:
                await pool.aclose()
        self._client = self._subscriber_client = None
        self._pool = self._subscriber_pool = None
        self._is_connected = False

    async def disconnect(self) -> None:
        """Close Redis connection and release the pool."""
        if not self._is_connected:
            return

        await self._release()
        logger.info("Redis connection closed")

    async def health_check(self) -> bool:
        """
        Perform Redis health check.

        Returns:
            True if Redis is healthy and responsive, False otherwise
        """
        if not self._is_connected or self._client is None:
            return False

        try:
            await self._client.ping()
            return True
        except (ConnectionError, TimeoutError) as e:
            logger.error(
                "Redis health check failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    def _ensure_connected(self) -> Redis:
        """
        Return the connected client.

        Raises:
            ConnectionError: If client is not connected
        """
        if not self._is_connected or self._client is None:
            raise ConnectionError("Redis client is not connected")
        return self._client

    async def publish(self, channel: str, message: str) -> int:
        """
        Publish a message on a channel.

        Args:
            channel: Channel name
            message: Serialized payload

        Returns:
            Number of subscribers that received the message
        """
        client = self._ensure_connected()
        receivers = await client.publish(channel, message)
        logger.debug("Message published", channel=channel, receivers=receivers)
        return receivers

    def pubsub(self) -> PubSub:
        """
        Create a pub/sub object on the subscriber pool.

        When every subscriber connection is taken, subscribing raises
        ``ConnectionError`` while publishing keeps working.
        """
        self._ensure_connected()
        return self._subscriber_client.pubsub(ignore_subscribe_messages=True)


_redis_client: Optional[RedisClient] = None


async def get_redis_client() -> RedisClient:
    """
    Get or create the process Redis connection.

    Raises:
        ConnectionError: If Redis connection fails
    """
    global _redis_client

    if _redis_client is None:
        client = RedisClient()
        await client.connect()
        _redis_client = client

    return _redis_client


async def close_redis_client() -> None:
    """Close the process Redis connection, if one was opened."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.disconnect()
        _redis_client = None
