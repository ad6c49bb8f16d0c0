"""Synchronization client keeping the local cache converged with the order service."""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime

from restaurant_order_sync.adapters.base_channel import PushChannel, PushChannelError
from restaurant_order_sync.handlers.push_event_handler import PushEventHandler
from restaurant_order_sync.observability import traced
from restaurant_order_sync.observability.metrics import (
    record_push_connection_change,
    record_refresh,
    record_refresh_duration,
    record_table_drift,
)
from restaurant_order_sync.services.cache_reducer import ReplaceOrders, ReplaceTables
from restaurant_order_sync.services.order_service_client import OrderServiceClient
from restaurant_order_sync.services.order_store import OrderStore
from restaurant_order_sync.services.table_binding import find_drift

logger = logging.getLogger(__name__)


@dataclass
class Connectivity:
    """Connectivity indicator for the client surface.

    Attributes:
        push_connected: Whether the push subscription is live
        consecutive_refresh_failures: Failed refresh cycles since the last success
        failure_threshold: Failures after which the surface is shown as degraded
        last_refresh_at: Time of the last successful refresh
    """

    push_connected: bool = False
    consecutive_refresh_failures: int = 0
    failure_threshold: int = 3
    last_refresh_at: datetime | None = None

    @property
    def degraded(self) -> bool:
        return self.consecutive_refresh_failures >= self.failure_threshold

    @property
    def polling_only(self) -> bool:
        return not self.push_connected


class SyncClient:
    """Merges periodic full refreshes and push events into the order store.

    Two independent tasks run after :meth:`start`: a refresh loop that re-fetches
    orders and tables every ``refresh_interval_seconds``, and a push loop that
    applies events as they arrive and reconnects with exponential backoff. The
    refresh loop never pauses while push is down. Neither loop ever lets an error
    escape or clears the cache.
    """

    def __init__(
        self,
        order_service_client: OrderServiceClient,
        store: OrderStore,
        push_channel: PushChannel | None = None,
        refresh_interval_seconds: float = 5.0,
        failure_threshold: int = 3,
        reconnect_base_seconds: float = 1.0,
        reconnect_max_seconds: float = 30.0,
    ) -> None:
        """Initialize the SyncClient.

        Args:
            order_service_client: Client for the order service REST API
            store: Order store to keep in sync
            push_channel: Push subscription (None runs in polling-only mode)
            refresh_interval_seconds: Seconds between full refreshes
            failure_threshold: Consecutive refresh failures before escalating
            reconnect_base_seconds: First reconnect delay after a push disconnect
            reconnect_max_seconds: Upper bound for the reconnect delay
        """
        self.order_service_client = order_service_client
        self.store = store
        self.push_channel = push_channel
        self.event_handler = PushEventHandler(store)
        self.refresh_interval_seconds = refresh_interval_seconds
        self.reconnect_base_seconds = reconnect_base_seconds
        self.reconnect_max_seconds = reconnect_max_seconds
        self.connectivity = Connectivity(failure_threshold=failure_threshold)
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @traced("sync.refresh")
    async def refresh(self) -> bool:
        """Fetch the full order and table lists and apply them.

        Each list is applied independently, so a failed table fetch does not hold
        back fresh orders. Failures leave the cache untouched.

        Returns:
            bool: True if both lists were fetched successfully
        """
        started = time.monotonic()
        orders, tables = await asyncio.gather(
            self.order_service_client.get_orders(),
            self.order_service_client.get_tables(),
        )

        record_refresh("orders", orders is not None)
        record_refresh("tables", tables is not None)

        if orders is not None:
            self.store.apply(ReplaceOrders(orders=tuple(orders)))
        if tables is not None:
            self.store.apply(ReplaceTables(tables=tuple(tables)))
            record_table_drift(len(find_drift(self.store.tables, self.store.orders)))

        record_refresh_duration(time.monotonic() - started)

        success = orders is not None and tables is not None
        self._track_refresh(success)
        return success

    def _track_refresh(self, success: bool) -> None:
        connectivity = self.connectivity
        if success:
            if connectivity.degraded:
                logger.info("Order service reachable again; refresh recovered")
            connectivity.consecutive_refresh_failures = 0
            connectivity.last_refresh_at = datetime.now(UTC)
            return

        connectivity.consecutive_refresh_failures += 1
        if connectivity.consecutive_refresh_failures == connectivity.failure_threshold:
            logger.error(
                f"Refresh failed {connectivity.failure_threshold} times in a row; "
                "showing cached data until the order service recovers"
            )
        else:
            logger.warning(
                f"Refresh failed ({connectivity.consecutive_refresh_failures} consecutive); "
                "will retry on next tick"
            )

    async def _refresh_loop(self) -> None:
        while True:
            try:
                await self.refresh()
            except Exception as e:
                logger.error(f"Unexpected refresh error: {e}", exc_info=True)
                self._track_refresh(False)
            await asyncio.sleep(self.refresh_interval_seconds)

    def _set_push_connected(self, connected: bool) -> None:
        if self.connectivity.push_connected == connected:
            return
        self.connectivity.push_connected = connected
        record_push_connection_change(1 if connected else -1)
        if connected:
            logger.info("Push channel connected")
        else:
            logger.warning("Push channel disconnected; continuing with periodic refresh only")

    def reconnect_delay(self, attempt: int) -> float:
        """Backoff delay before reconnect attempt number ``attempt`` (0-based)."""
        return min(self.reconnect_base_seconds * (2**attempt), self.reconnect_max_seconds)

    async def _push_loop(self) -> None:
        if self.push_channel is None:
            return

        attempt = 0
        while True:
            try:
                await self.push_channel.connect()
                self._set_push_connected(True)
                attempt = 0
                async for message in self.push_channel.messages():
                    self.event_handler.handle_message(message)
                logger.warning("Push channel stream ended")
            except PushChannelError as e:
                logger.warning(f"Push channel error: {e}")
            except Exception as e:
                logger.error(f"Unexpected push channel error: {e}", exc_info=True)

            self._set_push_connected(False)
            try:
                await self.push_channel.close()
            except Exception as e:
                logger.error(f"Failed to close push channel: {e}", exc_info=True)
            delay = self.reconnect_delay(attempt)
            attempt += 1
            logger.info(f"Reconnecting push channel in {delay:.1f}s (attempt {attempt})")
            await asyncio.sleep(delay)

    def start(self) -> None:
        """Start the refresh and push loops.

        Must be called from within a running event loop. Calling it twice is a no-op.
        """
        if self._tasks:
            return
        self._tasks.append(asyncio.create_task(self._refresh_loop(), name="order-refresh"))
        if self.push_channel is not None:
            self._tasks.append(asyncio.create_task(self._push_loop(), name="order-push"))
        logger.info(
            f"Sync client started (refresh every {self.refresh_interval_seconds}s, "
            f"push {'enabled' if self.push_channel is not None else 'disabled'})"
        )

    async def stop(self) -> None:
        """Stop both loops and unsubscribe from push events."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if self.push_channel is not None:
            await self.push_channel.close()
        self._set_push_connected(False)
        logger.info("Sync client stopped")
