"""New-order alerts raised from order store transitions."""

import logging
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from restaurant_order_sync.observability.metrics import record_new_order_alert
from restaurant_order_sync.services.cache_reducer import CacheState
from restaurant_order_sync.services.order_store import OrderStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewOrderAlert:
    """A one-shot "new order arrived" notification (sound plus toast).

    Attributes:
        sequence: Monotonic alert number within this client
        new_orders: How many orders the count grew by
        order_count: Order count after the increase
        message: Toast text
        play_sound: Whether the surface should play the alert sound
        raised_at: When the alert was raised
    """

    sequence: int
    new_orders: int
    order_count: int
    message: str
    play_sound: bool = True
    raised_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class AlertSink(ABC):
    """Destination for new-order alerts."""

    @abstractmethod
    def notify(self, alert: NewOrderAlert) -> None:
        """Deliver an alert."""


class LoggingAlertSink(AlertSink):
    """Writes alerts to the log."""

    def notify(self, alert: NewOrderAlert) -> None:
        logger.info(alert.message, extra={"alert_sequence": alert.sequence})


class RecentAlertsFeed(AlertSink):
    """Bounded in-memory feed of recent alerts, polled by the UI."""

    def __init__(self, limit: int = 50) -> None:
        self._alerts: deque[NewOrderAlert] = deque(maxlen=limit)

    def notify(self, alert: NewOrderAlert) -> None:
        self._alerts.append(alert)

    def since(self, sequence: int = 0) -> list[NewOrderAlert]:
        """Alerts with a sequence number greater than ``sequence``, oldest first."""
        return [alert for alert in self._alerts if alert.sequence > sequence]


class AlertTrigger:
    """Raises one alert each time the cached order count goes up.

    The count seen at the first full refresh is the baseline, so orders already
    present when the client starts never alert. Refreshes that do not change the
    cache content produce no store notification and therefore cannot re-fire.
    """

    def __init__(self, store: OrderStore, sinks: list[AlertSink] | None = None) -> None:
        """Initialize the trigger and subscribe to the store.

        Args:
            store: Order store to observe
            sinks: Alert destinations (defaults to logging only)
        """
        self.store = store
        self.sinks: list[AlertSink] = sinks if sinks is not None else [LoggingAlertSink()]
        self.baseline: int | None = None
        self.sequence = 0
        self._unsubscribe: Callable[[], None] = store.subscribe(self._on_cache_change)

    def _on_cache_change(self, _previous: CacheState, current: CacheState) -> None:
        if not self.store.orders_loaded:
            return

        count = len(current.orders)
        if self.baseline is None:
            self.baseline = count
            logger.info(f"Alert baseline set at {count} orders")
            return

        if count > self.baseline:
            self._fire(count - self.baseline, count)
        self.baseline = count

    def _fire(self, new_orders: int, order_count: int) -> None:
        self.sequence += 1
        message = "New order received" if new_orders == 1 else f"{new_orders} new orders received"
        alert = NewOrderAlert(
            sequence=self.sequence,
            new_orders=new_orders,
            order_count=order_count,
            message=message,
        )
        record_new_order_alert(new_orders)
        for sink in self.sinks:
            try:
                sink.notify(alert)
            except Exception as e:
                logger.error(f"Alert sink {type(sink).__name__} failed: {e}")

    def close(self) -> None:
        self._unsubscribe()
