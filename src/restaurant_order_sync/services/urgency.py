"""Time-based urgency tiers for open orders.

Urgency depends only on the wall clock and the order's creation time, so it has to
be recomputed on a timer even when no order data changes.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum

from restaurant_order_sync.models.order_models import Order, is_terminal
from restaurant_order_sync.services.cache_reducer import CacheState
from restaurant_order_sync.services.order_store import OrderStore

logger = logging.getLogger(__name__)

WARNING_AFTER_MINUTES = 10.0
CRITICAL_AFTER_MINUTES = 20.0

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class UrgencyTier(str, Enum):
    """Severity of an order based on how long it has been open."""

    FRESH = "fresh"
    WARNING = "warning"
    CRITICAL = "critical"


def elapsed_minutes(order: Order, now: datetime) -> float:
    """Minutes since the order was created (never negative)."""
    return max((now - order.created_at).total_seconds() / 60.0, 0.0)


def classify(order: Order, now: datetime) -> UrgencyTier:
    """Classify an order's urgency.

    Args:
        order: The order to classify
        now: Current time (timezone-aware)

    Returns:
        FRESH for completed orders or under 10 minutes, WARNING from 10 to 20
        minutes, CRITICAL beyond 20 minutes
    """
    if is_terminal(order.status):
        return UrgencyTier.FRESH

    minutes = elapsed_minutes(order, now)
    if minutes > CRITICAL_AFTER_MINUTES:
        return UrgencyTier.CRITICAL
    if minutes >= WARNING_AFTER_MINUTES:
        return UrgencyTier.WARNING
    return UrgencyTier.FRESH


class UrgencyTicker:
    """Keeps an urgency board for all cached orders.

    The board is recomputed on a fixed interval and whenever the cache changes;
    the interval keeps running regardless of network activity.
    """

    def __init__(
        self,
        store: OrderStore,
        interval_seconds: float = 10.0,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the ticker.

        Args:
            store: Order store to read from
            interval_seconds: Seconds between time-driven recomputations
            clock: Source of the current time
        """
        self.store = store
        self.interval_seconds = interval_seconds
        self.clock = clock
        self.tiers: dict[str, UrgencyTier] = {}
        self.computed_at: datetime | None = None
        self._task: asyncio.Task[None] | None = None
        self._unsubscribe: Callable[[], None] | None = None

    def recompute(self) -> dict[str, UrgencyTier]:
        """Rebuild the board from the current cache and clock."""
        now = self.clock()
        self.tiers = {order.id: classify(order, now) for order in self.store.orders}
        self.computed_at = now
        return self.tiers

    def tier_for(self, order_id: str) -> UrgencyTier:
        return self.tiers.get(order_id, UrgencyTier.FRESH)

    def _on_cache_change(self, _previous: CacheState, _current: CacheState) -> None:
        self.recompute()

    async def _run(self) -> None:
        while True:
            self.recompute()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        """Start the periodic recomputation task."""
        if self._task is not None:
            return
        self._unsubscribe = self.store.subscribe(self._on_cache_change)
        self._task = asyncio.create_task(self._run(), name="urgency-ticker")
        logger.info(f"Urgency ticker started ({self.interval_seconds}s interval)")

    async def stop(self) -> None:
        """Stop the ticker and detach from the store."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Urgency ticker stopped")
