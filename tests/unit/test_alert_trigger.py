"""Unit tests for new-order alerts."""

from collections.abc import Callable
from unittest.mock import MagicMock, patch

import pytest

from restaurant_order_sync.models.order_models import Order
from restaurant_order_sync.services.alert_trigger import (
    AlertSink,
    AlertTrigger,
    LoggingAlertSink,
    NewOrderAlert,
    RecentAlertsFeed,
)
from restaurant_order_sync.services.cache_reducer import (
    OrderCreated,
    OrderPatched,
    OrderRemoved,
    ReplaceOrders,
)
from restaurant_order_sync.services.order_store import OrderStore


@pytest.mark.unit
class TestAlertTrigger:
    """Test suite for AlertTrigger."""

    @pytest.fixture
    def store(self) -> OrderStore:
        """Create an empty store."""
        return OrderStore()

    @pytest.fixture
    def feed(self) -> RecentAlertsFeed:
        """Create an alerts feed."""
        return RecentAlertsFeed()

    @pytest.fixture
    def trigger(self, store: OrderStore, feed: RecentAlertsFeed) -> AlertTrigger:
        """Create a trigger publishing into the feed."""
        return AlertTrigger(store, sinks=[feed])

    def test_first_refresh_sets_baseline(
        self,
        store: OrderStore,
        trigger: AlertTrigger,
        feed: RecentAlertsFeed,
        make_order: Callable[..., Order],
    ) -> None:
        """Test that orders present at startup never alert."""
        store.apply(ReplaceOrders(orders=(make_order("o1"), make_order("o2"))))

        assert trigger.baseline == 2
        assert feed.since() == []

    def test_one_alert_per_increase(
        self,
        store: OrderStore,
        trigger: AlertTrigger,
        feed: RecentAlertsFeed,
        make_order: Callable[..., Order],
    ) -> None:
        """Test that each observed increase fires exactly once."""
        store.apply(ReplaceOrders(orders=(make_order("o1"),)))

        store.apply(OrderCreated(order=make_order("o2")))
        # the next refresh contains the same orders and must not re-fire
        store.apply(ReplaceOrders(orders=(make_order("o2"), make_order("o1"))))
        store.apply(ReplaceOrders(orders=(make_order("o2"), make_order("o1"))))

        alerts = feed.since()
        assert len(alerts) == 1
        assert alerts[0].message == "New order received"
        assert alerts[0].new_orders == 1
        assert alerts[0].order_count == 2
        assert alerts[0].play_sound is True

    def test_batch_increase_fires_once(
        self,
        store: OrderStore,
        trigger: AlertTrigger,
        feed: RecentAlertsFeed,
        make_order: Callable[..., Order],
    ) -> None:
        """Test that several orders arriving in one refresh raise one alert."""
        store.apply(ReplaceOrders(orders=(make_order("o1"),)))

        store.apply(ReplaceOrders(orders=(make_order("o3"), make_order("o2"), make_order("o1"))))

        alerts = feed.since()
        assert len(alerts) == 1
        assert alerts[0].message == "2 new orders received"

    def test_decrease_and_unchanged_count_do_not_fire(
        self,
        store: OrderStore,
        trigger: AlertTrigger,
        feed: RecentAlertsFeed,
        make_order: Callable[..., Order],
    ) -> None:
        """Test that removals and updates never alert, and later growth does."""
        store.apply(ReplaceOrders(orders=(make_order("o1"), make_order("o2"))))

        store.apply(OrderRemoved(order_id="o2"))
        store.apply(OrderPatched(order_id="o1", changes={"status": "preparing"}))
        assert feed.since() == []

        store.apply(OrderCreated(order=make_order("o3")))
        assert len(feed.since()) == 1

    def test_ignores_changes_before_first_refresh(
        self,
        store: OrderStore,
        trigger: AlertTrigger,
        feed: RecentAlertsFeed,
        make_order: Callable[..., Order],
    ) -> None:
        """Test that push events before the first load only feed the baseline."""
        store.apply(OrderCreated(order=make_order("o1")))
        assert trigger.baseline is None

        store.apply(ReplaceOrders(orders=(make_order("o1"),)))

        assert trigger.baseline == 1
        assert feed.since() == []

    def test_empty_first_load_then_order(
        self,
        store: OrderStore,
        trigger: AlertTrigger,
        feed: RecentAlertsFeed,
        make_order: Callable[..., Order],
    ) -> None:
        """Test that the first order of the day alerts after an empty startup."""
        store.apply(ReplaceOrders(orders=()))

        store.apply(OrderCreated(order=make_order("o1")))

        assert [a.sequence for a in feed.since()] == [1]

    def test_failing_sink_does_not_block_others(
        self, store: OrderStore, feed: RecentAlertsFeed, make_order: Callable[..., Order]
    ) -> None:
        """Test that a broken sink is isolated."""
        broken = MagicMock(spec=AlertSink)
        broken.notify.side_effect = RuntimeError("speaker unplugged")
        AlertTrigger(store, sinks=[broken, feed])

        store.apply(ReplaceOrders(orders=()))
        store.apply(OrderCreated(order=make_order("o1")))

        broken.notify.assert_called_once()
        assert len(feed.since()) == 1

    def test_records_metric(self, store: OrderStore, feed: RecentAlertsFeed, make_order: Callable[..., Order]) -> None:
        """Test that fired alerts are counted."""
        AlertTrigger(store, sinks=[feed])
        store.apply(ReplaceOrders(orders=()))

        with patch("restaurant_order_sync.services.alert_trigger.record_new_order_alert") as mock_record:
            store.apply(OrderCreated(order=make_order("o1")))

        mock_record.assert_called_once_with(1)

    def test_close_detaches(
        self,
        store: OrderStore,
        trigger: AlertTrigger,
        feed: RecentAlertsFeed,
        make_order: Callable[..., Order],
    ) -> None:
        """Test that a closed trigger stops alerting."""
        store.apply(ReplaceOrders(orders=()))
        trigger.close()

        store.apply(OrderCreated(order=make_order("o1")))

        assert feed.since() == []


@pytest.mark.unit
class TestAlertSinks:
    """Test suite for alert sinks."""

    def test_feed_since_and_limit(self) -> None:
        """Test that the feed is bounded and filters by sequence."""
        feed = RecentAlertsFeed(limit=2)
        for sequence in (1, 2, 3):
            feed.notify(NewOrderAlert(sequence=sequence, new_orders=1, order_count=sequence, message="m"))

        assert [a.sequence for a in feed.since()] == [2, 3]
        assert [a.sequence for a in feed.since(2)] == [3]

    def test_logging_sink(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that the logging sink writes the toast message."""
        with caplog.at_level("INFO"):
            LoggingAlertSink().notify(
                NewOrderAlert(sequence=1, new_orders=1, order_count=1, message="New order received")
            )

        assert "New order received" in caplog.text
