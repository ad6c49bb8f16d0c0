"""Redis pub/sub push channel.

The order service publishes one JSON message per order or table change to a Redis
channel; every client surface subscribes to it.
"""

import logging
from collections.abc import AsyncIterator
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from restaurant_order_sync.adapters.base_channel import PushChannel, PushChannelError

logger = logging.getLogger(__name__)


class RedisPushChannel(PushChannel):
    """Push channel backed by a Redis pub/sub subscription."""

    def __init__(self, redis_url: str, channel_name: str = "orders:events") -> None:
        """Initialize the Redis channel.

        Args:
            redis_url: Redis connection URL (e.g., "redis://localhost:6379")
            channel_name: Pub/sub channel carrying order events
        """
        super().__init__(channel_name)
        self.redis_url = redis_url
        self._client: Any = None
        self._pubsub: Any = None

    async def connect(self) -> None:
        """Connect to Redis and subscribe to the event channel."""
        try:
            self._client = redis.from_url(self.redis_url)
            self._pubsub = self._client.pubsub(ignore_subscribe_messages=True)
            await self._pubsub.subscribe(self.channel_name)
        except (RedisError, OSError) as e:
            raise PushChannelError(f"Could not subscribe to {self.channel_name}: {e}") from e

        logger.info(f"Subscribed to push channel {self.channel_name}")

    async def messages(self) -> AsyncIterator[Any]:
        """Yield the data of each published message."""
        if self._pubsub is None:
            raise PushChannelError("Push channel is not connected")

        try:
            async for message in self._pubsub.listen():
                if message.get("type") == "message":
                    yield message["data"]
        except (RedisError, OSError) as e:
            raise PushChannelError(f"Lost push channel {self.channel_name}: {e}") from e

    async def close(self) -> None:
        """Unsubscribe and close the Redis connection."""
        pubsub, client = self._pubsub, self._client
        self._pubsub = None
        self._client = None

        try:
            if pubsub is not None:
                await pubsub.unsubscribe(self.channel_name)
                await pubsub.aclose()
            if client is not None:
                await client.aclose()
        except (RedisError, OSError) as e:
            logger.debug(f"Ignoring error while closing push channel: {e}")
