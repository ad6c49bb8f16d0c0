"""Unit tests for PushEventHandler."""

import json
from collections.abc import Callable
from typing import Any
from unittest.mock import patch

import pytest

from restaurant_order_sync.handlers.push_event_handler import PushEventHandler
from restaurant_order_sync.models.order_models import Order, OrderStatus, Table, TableStatus
from restaurant_order_sync.services.cache_reducer import ReplaceOrders, ReplaceTables
from restaurant_order_sync.services.order_store import OrderStore


def push(event: str, data: Any) -> bytes:
    return json.dumps({"event": event, "data": data}).encode()


@pytest.mark.unit
class TestPushEventHandler:
    """Test suite for PushEventHandler."""

    @pytest.fixture
    def store(self, make_order: Callable[..., Order], make_table: Callable[..., Table]) -> OrderStore:
        """Store holding one order and one table."""
        store = OrderStore()
        store.apply(ReplaceOrders(orders=(make_order("o1", table_id="tbl_1", table_number=1),)))
        store.apply(ReplaceTables(tables=(make_table("tbl_1", 1),)))
        return store

    @pytest.fixture
    def handler(self, store: OrderStore) -> PushEventHandler:
        """Create a handler bound to the store."""
        return PushEventHandler(store)

    def test_order_created_is_prepended(
        self, handler: PushEventHandler, store: OrderStore, mock_order_payload: dict[str, Any]
    ) -> None:
        """Test that a created order lands at the front of the cache."""
        assert handler.handle_message(push("orderCreated", mock_order_payload)) is True

        assert store.orders[0].id == "66f1c0a9e4b0a1b2c3d4e5f6"
        assert store.orders[0].table_id == "tbl_7"
        assert len(store.orders) == 2

    def test_duplicate_create_is_ignored(
        self, handler: PushEventHandler, store: OrderStore, mock_order_payload: dict[str, Any]
    ) -> None:
        """Test that a redelivered create does not duplicate the order."""
        handler.handle_message(push("orderCreated", mock_order_payload))

        assert handler.handle_message(push("orderCreated", mock_order_payload)) is False
        assert len(store.orders) == 2

    def test_order_updated_overlays_partial(self, handler: PushEventHandler, store: OrderStore) -> None:
        """Test that only the carried fields change."""
        changed = handler.handle_message(push("orderUpdated", {"_id": {"$oid": "o1"}, "status": "preparing"}))

        assert changed is True
        order = store.get_order("o1")
        assert order is not None
        assert order.status == OrderStatus.PREPARING
        assert order.table_id == "tbl_1"

    def test_order_updated_for_unknown_order_is_ignored(
        self, handler: PushEventHandler, store: OrderStore
    ) -> None:
        """Test that updates for orders not yet cached wait for the next refresh."""
        assert handler.handle_message(push("orderUpdated", {"orderId": "o9", "status": "ready"})) is False
        assert store.get_order("o9") is None

    def test_order_deleted(self, handler: PushEventHandler, store: OrderStore) -> None:
        """Test removal by a nested reference."""
        assert handler.handle_message(push("orderDeleted", {"order": {"_id": "o1"}})) is True
        assert store.orders == ()

    def test_table_updated(self, handler: PushEventHandler, store: OrderStore) -> None:
        """Test that table updates merge by id."""
        assert handler.handle_message(push("tableUpdated", {"tableId": "tbl_1", "status": "occupied"})) is True

        table = store.get_table("tbl_1")
        assert table is not None
        assert table.status == TableStatus.OCCUPIED

    def test_invalid_created_order_is_dropped(self, handler: PushEventHandler, store: OrderStore) -> None:
        """Test that a created order missing required fields is dropped."""
        with patch("restaurant_order_sync.handlers.push_event_handler.record_push_event") as mock_record:
            changed = handler.handle_message(push("orderCreated", {"_id": "o2", "status": "new"}))

        assert changed is False
        assert store.get_order("o2") is None
        mock_record.assert_called_once_with("orderCreated", "dropped")

    def test_invalid_update_is_rejected(self, handler: PushEventHandler, store: OrderStore) -> None:
        """Test that an update producing an invalid record leaves the order unchanged."""
        assert handler.handle_message(push("orderUpdated", {"_id": "o1", "status": "exploded"})) is False

        order = store.get_order("o1")
        assert order is not None
        assert order.status == OrderStatus.NEW

    def test_malformed_message_is_dropped(self, handler: PushEventHandler) -> None:
        """Test that garbage never raises."""
        with patch("restaurant_order_sync.handlers.push_event_handler.record_push_event") as mock_record:
            assert handler.handle_message(b"\x00\xff garbage") is False

        mock_record.assert_called_once_with("unknown", "dropped")

    def test_outcomes_are_recorded(self, handler: PushEventHandler) -> None:
        """Test applied and ignored outcomes."""
        with patch("restaurant_order_sync.handlers.push_event_handler.record_push_event") as mock_record:
            handler.handle_message(push("orderUpdated", {"_id": "o1", "status": "held"}))
            handler.handle_message(push("orderUpdated", {"_id": "o1", "status": "held"}))

        assert [c.args for c in mock_record.call_args_list] == [
            ("orderUpdated", "applied"),
            ("orderUpdated", "ignored"),
        ]
