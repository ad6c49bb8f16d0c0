"""Base class for push notification channels.

A push channel delivers raw order/table event messages from the order service.
Parsing and applying them is the job of the push event handler; the channel only
connects, yields messages and reports disconnection.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any


class PushChannelError(Exception):
    """Raised when a push channel cannot connect or loses its connection."""


class PushChannel(ABC):
    """Abstract base class for push channels.

    The synchronization client drives the lifecycle:
    - connect() raises PushChannelError if the channel is unreachable
    - messages() yields raw messages and raises PushChannelError on disconnect
    - close() releases resources and never raises
    """

    def __init__(self, channel_name: str) -> None:
        """Initialize the push channel.

        Args:
            channel_name: Name of the channel or topic carrying order events
        """
        self.channel_name = channel_name

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection and subscribe.

        Raises:
            PushChannelError: If the subscription cannot be established
        """

    @abstractmethod
    def messages(self) -> AsyncIterator[Any]:
        """Yield raw messages (bytes, str or dict) until the connection drops.

        Raises:
            PushChannelError: When the connection is lost
        """

    @abstractmethod
    async def close(self) -> None:
        """Unsubscribe and release the connection."""
