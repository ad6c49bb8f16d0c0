"""Owned store for the local order/table cache."""

import json
import logging
from collections.abc import Callable

from pydantic import ValidationError

from restaurant_order_sync.models.order_models import Order, Table, WireModel
from restaurant_order_sync.services.cache_reducer import (
    CacheAction,
    CacheState,
    ReplaceOrders,
    ReplaceTables,
    reduce_cache,
)

logger = logging.getLogger(__name__)

CacheListener = Callable[[CacheState, CacheState], None]


def fingerprint(records: tuple[WireModel, ...]) -> str:
    """Serialize records to a canonical string for content-equality checks."""
    return json.dumps(
        [record.model_dump(mode="json", by_alias=True) for record in records],
        sort_keys=True,
    )


class OrderStore:
    """Single-writer store holding the order and table cache of one client.

    Every write, whether network-originated or an optimistic local change, goes
    through :meth:`apply`, which runs the cache reducer and only publishes a new
    snapshot when the serialized content actually changed. Listeners receive
    ``(previous, current)`` snapshots.
    """

    def __init__(self) -> None:
        """Initialize an empty, not-yet-loaded store."""
        self._state = CacheState()
        self._listeners: list[CacheListener] = []
        self.revision = 0
        self.orders_loaded = False
        self.tables_loaded = False

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def orders(self) -> tuple[Order, ...]:
        return self._state.orders

    @property
    def tables(self) -> tuple[Table, ...]:
        return self._state.tables

    def get_order(self, order_id: str) -> Order | None:
        return self._state.find_order(order_id)

    def get_table(self, table_id: str) -> Table | None:
        return self._state.find_table(table_id)

    def subscribe(self, listener: CacheListener) -> Callable[[], None]:
        """Register a change listener.

        Args:
            listener: Callable invoked with ``(previous, current)`` snapshots

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def apply(self, action: CacheAction) -> bool:
        """Apply an action through the reducer.

        Args:
            action: The change to apply

        Returns:
            bool: True if the cache content changed, False for no-ops and rejected
                merges
        """
        previous = self._state
        try:
            candidate = reduce_cache(previous, action)
        except ValidationError as e:
            logger.warning(f"Rejected {type(action).__name__}: merged record is invalid: {e}")
            return False

        first_load = self._mark_loaded(action)
        changed = candidate is not previous and (
            fingerprint(candidate.orders) != fingerprint(previous.orders)
            or fingerprint(candidate.tables) != fingerprint(previous.tables)
        )

        if not changed and not first_load:
            return False

        if changed:
            self._state = candidate
            self.revision += 1

        self._notify(previous, self._state)
        return changed

    def _mark_loaded(self, action: CacheAction) -> bool:
        if isinstance(action, ReplaceOrders) and not self.orders_loaded:
            self.orders_loaded = True
            return True
        if isinstance(action, ReplaceTables) and not self.tables_loaded:
            self.tables_loaded = True
            return True
        return False

    def _notify(self, previous: CacheState, current: CacheState) -> None:
        for listener in list(self._listeners):
            try:
                listener(previous, current)
            except Exception as e:
                logger.error(f"Cache listener {listener!r} failed: {e}", exc_info=True)
