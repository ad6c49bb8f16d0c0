"""Handler turning push messages into targeted cache merges."""

import logging
from typing import Any

from pydantic import ValidationError

from restaurant_order_sync.models.event_models import PushEvent, PushEventType, parse_push_message
from restaurant_order_sync.models.order_models import Order
from restaurant_order_sync.observability.metrics import record_push_event
from restaurant_order_sync.services.cache_reducer import (
    CacheAction,
    OrderCreated,
    OrderPatched,
    OrderRemoved,
    TablePatched,
)
from restaurant_order_sync.services.order_store import OrderStore

logger = logging.getLogger(__name__)


class PushEventHandler:
    """Applies push events to the order store.

    Each event becomes exactly one cache action. Malformed payloads are logged and
    dropped; nothing raised here may reach the push loop.
    """

    def __init__(self, store: OrderStore) -> None:
        """Initialize the handler.

        Args:
            store: Order store receiving the merges
        """
        self.store = store

    def to_action(self, event: PushEvent) -> CacheAction | None:
        """Translate a parsed event into a cache action.

        Returns:
            The cache action, or None if the event body is not a valid record
        """
        if event.event_type is PushEventType.ORDER_CREATED:
            try:
                order = Order.model_validate({**event.body, "id": event.entity_id})
            except ValidationError as e:
                logger.warning(f"Dropping orderCreated for {event.entity_id}: {e}")
                return None
            return OrderCreated(order=order)

        if event.event_type is PushEventType.ORDER_UPDATED:
            return OrderPatched(order_id=event.entity_id, changes=event.body)

        if event.event_type is PushEventType.ORDER_DELETED:
            return OrderRemoved(order_id=event.entity_id)

        return TablePatched(table_id=event.entity_id, changes=event.body)

    def handle_message(self, message: Any) -> bool:
        """Parse and apply one raw push message.

        Args:
            message: Raw message from the push channel

        Returns:
            True if the cache changed, False if the message was dropped or was a no-op
        """
        event = parse_push_message(message)
        if event is None:
            record_push_event("unknown", "dropped")
            return False

        action = self.to_action(event)
        if action is None:
            record_push_event(event.event_type.value, "dropped")
            return False

        changed = self.store.apply(action)
        record_push_event(event.event_type.value, "applied" if changed else "ignored")
        if changed:
            logger.debug(f"Applied {event.event_type.value} for {event.entity_id}")
        return changed
