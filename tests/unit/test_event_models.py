"""Unit tests for push event parsing and identifier normalization."""

import json
from typing import Any

import pytest

from restaurant_order_sync.models.event_models import (
    IdReference,
    IdShape,
    PushEventType,
    normalize_id,
    parse_push_message,
    resolve_id,
)


@pytest.mark.unit
class TestNormalizeId:
    """Test suite for identifier normalization."""

    @pytest.mark.parametrize(
        ("raw", "entity", "expected"),
        [
            ("66f1c0a9", None, "66f1c0a9"),
            ("  66f1c0a9  ", None, "66f1c0a9"),
            (42, None, "42"),
            ({"_id": "66f1c0a9"}, None, "66f1c0a9"),
            ({"id": "66f1c0a9"}, None, "66f1c0a9"),
            ({"$oid": "66f1c0a9"}, None, "66f1c0a9"),
            ({"_id": {"$oid": "66f1c0a9"}}, None, "66f1c0a9"),
            ({"orderId": "66f1c0a9"}, "order", "66f1c0a9"),
            ({"order_id": {"$oid": "66f1c0a9"}}, "order", "66f1c0a9"),
            ({"order": {"_id": "66f1c0a9", "status": "new"}}, "order", "66f1c0a9"),
            ({"tableId": 7}, "table", "7"),
        ],
    )
    def test_known_shapes(self, raw: Any, entity: str | None, expected: str) -> None:
        """Test that every supported shape resolves to the same canonical id."""
        assert normalize_id(raw, entity) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", True, 3.5, [], {}, {"name": "Burger"}])
    def test_unrecognized_shapes(self, raw: Any) -> None:
        """Test that unrecognized values normalize to None."""
        assert normalize_id(raw) is None

    def test_nested_lookup_requires_entity(self) -> None:
        """Test that nested references are only followed for the named entity."""
        assert normalize_id({"orderId": "o1"}) is None
        assert normalize_id({"orderId": "o1"}, "table") is None

    def test_embedded_key_takes_precedence(self) -> None:
        """Test that an embedded id wins over a nested reference."""
        assert normalize_id({"_id": "o1", "orderId": "o2"}, "order") == "o1"

    def test_resolve_reports_shape(self) -> None:
        """Test that the resolved reference is tagged with its outer shape."""
        assert resolve_id("o1") == IdReference(IdShape.BARE, "o1")
        assert resolve_id({"$oid": "o1"}) == IdReference(IdShape.EMBEDDED, "o1")
        assert resolve_id({"order": {"_id": "o1"}}, "order") == IdReference(IdShape.NESTED, "o1")


@pytest.mark.unit
class TestParsePushMessage:
    """Test suite for push message parsing."""

    def test_order_created_from_bytes(self) -> None:
        """Test parsing a raw Redis message carrying a full order."""
        message = json.dumps(
            {
                "event": "orderCreated",
                "data": {"_id": {"$oid": "o1"}, "status": "new", "createdAt": "2024-01-15T12:00:00Z"},
            }
        ).encode()

        event = parse_push_message(message)

        assert event is not None
        assert event.event_type == PushEventType.ORDER_CREATED
        assert event.entity_id == "o1"
        assert event.body == {"status": "new", "createdAt": "2024-01-15T12:00:00Z"}

    def test_type_key_is_accepted(self) -> None:
        """Test that 'type' is accepted in place of 'event'."""
        event = parse_push_message({"type": "orderUpdated", "data": {"_id": "o1", "status": "ready"}})

        assert event is not None
        assert event.event_type == PushEventType.ORDER_UPDATED
        assert event.body == {"status": "ready"}

    def test_nested_reference_with_changes(self) -> None:
        """Test an update that names the order and carries a changes object."""
        event = parse_push_message(
            json.dumps({"event": "orderUpdated", "data": {"orderId": "o1", "changes": {"status": "preparing"}}})
        )

        assert event is not None
        assert event.entity_id == "o1"
        assert event.body == {"status": "preparing"}

    def test_nested_entity_record(self) -> None:
        """Test an event wrapping the whole record under the entity key."""
        event = parse_push_message(
            {"event": "tableUpdated", "data": {"table": {"_id": "t1", "status": "occupied"}}}
        )

        assert event is not None
        assert event.event_type == PushEventType.TABLE_UPDATED
        assert event.entity_id == "t1"
        assert event.body["status"] == "occupied"

    def test_order_deleted_with_bare_id(self) -> None:
        """Test that deletions only need an id."""
        event = parse_push_message({"event": "orderDeleted", "data": "o1"})

        assert event is not None
        assert event.event_type == PushEventType.ORDER_DELETED
        assert event.entity_id == "o1"
        assert event.body == {}

    @pytest.mark.parametrize(
        "message",
        [
            b"not json",
            "[1, 2, 3]",
            {"event": "menuUpdated", "data": {"_id": "m1"}},
            {"data": {"_id": "o1"}},
            {"event": "orderUpdated", "data": {"status": "ready"}},
            {"event": "orderUpdated", "data": {"_id": "o1"}},
            {"event": "orderDeleted"},
            12,
        ],
    )
    def test_malformed_messages_are_dropped(self, message: Any) -> None:
        """Test that malformed or unidentifiable messages yield None."""
        assert parse_push_message(message) is None

    def test_event_entity(self) -> None:
        """Test the entity named by each event type."""
        assert PushEventType.ORDER_CREATED.entity == "order"
        assert PushEventType.ORDER_DELETED.entity == "order"
        assert PushEventType.TABLE_UPDATED.entity == "table"
