"""Unit tests for the Redis push channel."""

from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from restaurant_order_sync.adapters.base_channel import PushChannelError
from restaurant_order_sync.adapters.redis_channel import RedisPushChannel


def make_pubsub(messages: list[dict[str, Any]], error: Exception | None = None) -> MagicMock:
    """Build a mock pubsub whose listen() yields ``messages`` then optionally raises."""

    async def listen() -> AsyncIterator[dict[str, Any]]:
        for message in messages:
            yield message
        if error is not None:
            raise error

    pubsub = MagicMock()
    pubsub.subscribe = AsyncMock()
    pubsub.unsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()
    pubsub.listen = listen
    return pubsub


@pytest.mark.unit
class TestRedisPushChannel:
    """Test suite for RedisPushChannel."""

    @pytest.fixture
    def channel(self) -> RedisPushChannel:
        """Create a channel with test configuration."""
        return RedisPushChannel(redis_url="redis://localhost:6379/0", channel_name="orders:events")

    @pytest.mark.asyncio
    async def test_connect_subscribes(self, channel: RedisPushChannel) -> None:
        """Test that connecting subscribes to the configured channel."""
        pubsub = make_pubsub([])
        redis_client = MagicMock()
        redis_client.pubsub.return_value = pubsub

        with patch(
            "restaurant_order_sync.adapters.redis_channel.redis.from_url", return_value=redis_client
        ) as mock_from_url:
            await channel.connect()

        mock_from_url.assert_called_once_with("redis://localhost:6379/0")
        redis_client.pubsub.assert_called_once_with(ignore_subscribe_messages=True)
        pubsub.subscribe.assert_awaited_once_with("orders:events")

    @pytest.mark.asyncio
    async def test_connect_failure_raises_channel_error(self, channel: RedisPushChannel) -> None:
        """Test that Redis errors surface as PushChannelError."""
        pubsub = make_pubsub([])
        pubsub.subscribe.side_effect = RedisConnectionError("refused")
        redis_client = MagicMock()
        redis_client.pubsub.return_value = pubsub

        with patch("restaurant_order_sync.adapters.redis_channel.redis.from_url", return_value=redis_client):
            with pytest.raises(PushChannelError):
                await channel.connect()

    @pytest.mark.asyncio
    async def test_messages_yields_published_data(self, channel: RedisPushChannel) -> None:
        """Test that only published message payloads are yielded."""
        pubsub = make_pubsub(
            [
                {"type": "subscribe", "data": 1},
                {"type": "message", "data": b'{"event": "orderDeleted", "data": "o1"}'},
                {"type": "message", "data": b'{"event": "orderDeleted", "data": "o2"}'},
            ]
        )
        redis_client = MagicMock()
        redis_client.pubsub.return_value = pubsub

        with patch("restaurant_order_sync.adapters.redis_channel.redis.from_url", return_value=redis_client):
            await channel.connect()
            received = [message async for message in channel.messages()]

        assert received == [
            b'{"event": "orderDeleted", "data": "o1"}',
            b'{"event": "orderDeleted", "data": "o2"}',
        ]

    @pytest.mark.asyncio
    async def test_lost_connection_raises_channel_error(self, channel: RedisPushChannel) -> None:
        """Test that a dropped connection while listening raises PushChannelError."""
        pubsub = make_pubsub(
            [{"type": "message", "data": b"{}"}], error=RedisConnectionError("connection reset")
        )
        redis_client = MagicMock()
        redis_client.pubsub.return_value = pubsub
        received = []

        with patch("restaurant_order_sync.adapters.redis_channel.redis.from_url", return_value=redis_client):
            await channel.connect()
            with pytest.raises(PushChannelError):
                async for message in channel.messages():
                    received.append(message)

        assert received == [b"{}"]

    @pytest.mark.asyncio
    async def test_messages_requires_connection(self, channel: RedisPushChannel) -> None:
        """Test that iterating before connect raises PushChannelError."""
        with pytest.raises(PushChannelError):
            async for _ in channel.messages():
                pass

    @pytest.mark.asyncio
    async def test_close_unsubscribes(self, channel: RedisPushChannel) -> None:
        """Test that closing unsubscribes and releases the connection."""
        pubsub = make_pubsub([])
        redis_client = MagicMock()
        redis_client.pubsub.return_value = pubsub
        redis_client.aclose = AsyncMock()

        with patch("restaurant_order_sync.adapters.redis_channel.redis.from_url", return_value=redis_client):
            await channel.connect()
            await channel.close()

        pubsub.unsubscribe.assert_awaited_once_with("orders:events")
        pubsub.aclose.assert_awaited_once()
        redis_client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_swallows_errors_and_is_idempotent(self, channel: RedisPushChannel) -> None:
        """Test that close never raises, even when Redis is already gone."""
        pubsub = make_pubsub([])
        pubsub.unsubscribe.side_effect = RedisConnectionError("gone")
        redis_client = MagicMock()
        redis_client.pubsub.return_value = pubsub

        with patch("restaurant_order_sync.adapters.redis_channel.redis.from_url", return_value=redis_client):
            await channel.connect()
            await channel.close()
            await channel.close()
