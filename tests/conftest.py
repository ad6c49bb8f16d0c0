"""Shared pytest fixtures and configuration for all tests."""

import os
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

# main.py builds the real application at import time unless running under test
os.environ.setdefault("ENVIRONMENT", "test")

from restaurant_order_sync.models.order_models import (  # noqa: E402
    Order,
    OrderItem,
    OrderStatus,
    Table,
    TableStatus,
)

BASE_TIME = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def now() -> datetime:
    """Fixture providing a fixed current time."""
    return BASE_TIME


@pytest.fixture
def make_item() -> Callable[..., OrderItem]:
    """Fixture providing a factory for order lines."""

    def _make(
        item_id: str = "menu_burger",
        name: str = "Burger",
        price: str = "12.50",
        quantity: int = 1,
        is_ready: bool = False,
        **fields: Any,
    ) -> OrderItem:
        return OrderItem(
            id=item_id,
            name=name,
            price=price,
            quantity=quantity,
            is_ready=is_ready,
            **fields,
        )

    return _make


@pytest.fixture
def make_order(make_item: Callable[..., OrderItem]) -> Callable[..., Order]:
    """Fixture providing a factory for orders created relative to BASE_TIME."""

    def _make(
        order_id: str = "ord_1",
        status: OrderStatus = OrderStatus.NEW,
        items: list[OrderItem] | None = None,
        minutes_ago: float = 0,
        table_id: str | None = None,
        table_number: int | None = None,
        **fields: Any,
    ) -> Order:
        return Order(
            id=order_id,
            status=status,
            items=tuple(items) if items is not None else (make_item(),),
            subtotal="12.50",
            tax="1.25",
            created_at=BASE_TIME - timedelta(minutes=minutes_ago),
            table_id=table_id,
            table_number=table_number,
            **fields,
        )

    return _make


@pytest.fixture
def make_table() -> Callable[..., Table]:
    """Fixture providing a factory for tables."""

    def _make(
        table_id: str = "tbl_1",
        number: int = 1,
        status: TableStatus = TableStatus.AVAILABLE,
        capacity: int = 4,
        **fields: Any,
    ) -> Table:
        return Table(id=table_id, number=number, status=status, capacity=capacity, **fields)

    return _make


@pytest.fixture
def mock_order_payload() -> dict[str, Any]:
    """Fixture providing an order as the order service sends it."""
    return {
        "_id": {"$oid": "66f1c0a9e4b0a1b2c3d4e5f6"},
        "type": "dine-in",
        "status": "preparing",
        "paymentStatus": "unpaid",
        "items": [
            {
                "_id": "menu_burger",
                "name": "Burger",
                "price": "12.50",
                "quantity": 2,
                "isReady": False,
                "category": "Mains",
            },
            {
                "_id": "menu_fries",
                "name": "Fries",
                "price": "4.00",
                "quantity": 1,
                "isReady": True,
            },
        ],
        "subtotal": "29.00",
        "tax": "2.90",
        "discount": "1.00",
        "total": "30.90",
        "createdAt": "2024-01-15T11:45:00Z",
        "tableId": {"_id": "tbl_7"},
        "tableNumber": 7,
        "cashierName": "Sam",
    }


@pytest.fixture
def mock_table_payload() -> dict[str, Any]:
    """Fixture providing a table as the order service sends it."""
    return {
        "_id": "tbl_7",
        "number": 7,
        "floorId": {"$oid": "floor_main"},
        "capacity": 4,
        "shape": "circle",
        "status": "occupied",
        "position": {"x": 120, "y": 80},
        "rotation": 0,
    }
