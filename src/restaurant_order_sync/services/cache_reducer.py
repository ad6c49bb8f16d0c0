"""Reducer for the local order/table cache.

Both producers (full refresh and push events) and the optimistic local writes
describe their change as an action; ``reduce_cache`` is the one function that turns
an action plus the current state into the next state. It is pure so that it can be
tested against arbitrary interleavings without timers or a network.
"""

from dataclasses import dataclass, field
from typing import Any

from restaurant_order_sync.models.order_models import Order, Table


@dataclass(frozen=True)
class CacheState:
    """Immutable snapshot of the cache."""

    orders: tuple[Order, ...] = ()
    tables: tuple[Table, ...] = ()

    def find_order(self, order_id: str) -> Order | None:
        for order in self.orders:
            if order.id == order_id:
                return order
        return None

    def find_table(self, table_id: str) -> Table | None:
        for table in self.tables:
            if table.id == table_id:
                return table
        return None


@dataclass(frozen=True)
class ReplaceOrders:
    """Full refresh of the order list."""

    orders: tuple[Order, ...]


@dataclass(frozen=True)
class ReplaceTables:
    """Full refresh of the table list."""

    tables: tuple[Table, ...]


@dataclass(frozen=True)
class OrderCreated:
    """A new order; prepended unless its id is already cached."""

    order: Order


@dataclass(frozen=True)
class OrderPatched:
    """Partial update; only the given fields change."""

    order_id: str
    changes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OrderPut:
    """Whole-record write (optimistic write or confirmed record)."""

    order: Order


@dataclass(frozen=True)
class OrderRemoved:
    """Order deletion by id."""

    order_id: str


@dataclass(frozen=True)
class TablePatched:
    """Partial table update; only the given fields change."""

    table_id: str
    changes: dict[str, Any] = field(default_factory=dict)


CacheAction = (
    ReplaceOrders
    | ReplaceTables
    | OrderCreated
    | OrderPatched
    | OrderPut
    | OrderRemoved
    | TablePatched
)


def _replace_order(orders: tuple[Order, ...], updated: Order) -> tuple[Order, ...]:
    return tuple(updated if order.id == updated.id else order for order in orders)


def reduce_cache(state: CacheState, action: CacheAction) -> CacheState:
    """Apply one action to a cache state.

    Args:
        state: Current cache state
        action: The change to apply

    Returns:
        The next state. ``state`` itself is returned when the action is a no-op
        (for example a patch for an unknown id).

    Raises:
        pydantic.ValidationError: If a patch would produce an invalid record
        TypeError: If the action type is unknown
    """
    if isinstance(action, ReplaceOrders):
        return CacheState(orders=tuple(action.orders), tables=state.tables)

    if isinstance(action, ReplaceTables):
        return CacheState(orders=state.orders, tables=tuple(action.tables))

    if isinstance(action, OrderCreated):
        if state.find_order(action.order.id) is not None:
            return state
        return CacheState(orders=(action.order, *state.orders), tables=state.tables)

    if isinstance(action, OrderPut):
        if state.find_order(action.order.id) is None:
            return CacheState(orders=(action.order, *state.orders), tables=state.tables)
        return CacheState(orders=_replace_order(state.orders, action.order), tables=state.tables)

    if isinstance(action, OrderPatched):
        existing = state.find_order(action.order_id)
        if existing is None:
            return state
        updated = existing.merged(action.changes)
        return CacheState(orders=_replace_order(state.orders, updated), tables=state.tables)

    if isinstance(action, OrderRemoved):
        if state.find_order(action.order_id) is None:
            return state
        return CacheState(
            orders=tuple(order for order in state.orders if order.id != action.order_id),
            tables=state.tables,
        )

    if isinstance(action, TablePatched):
        table = state.find_table(action.table_id)
        if table is None:
            return state
        updated_table = table.merged(action.changes)
        return CacheState(
            orders=state.orders,
            tables=tuple(
                updated_table if existing.id == updated_table.id else existing
                for existing in state.tables
            ),
        )

    raise TypeError(f"Unknown cache action: {type(action).__name__}")
