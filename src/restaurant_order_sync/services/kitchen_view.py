"""Kitchen-facing views: tickets and the mise en place aggregate.

Both views are rebuilt from the full order set on every call. There is no running
tally to keep in sync with partial updates.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime

from restaurant_order_sync.models.order_models import Order, OrderStatus, OrderType
from restaurant_order_sync.services.cache_reducer import CacheState
from restaurant_order_sync.services.order_store import OrderStore
from restaurant_order_sync.services.urgency import UrgencyTier, classify, elapsed_minutes

KITCHEN_STATUSES = (OrderStatus.NEW, OrderStatus.PREPARING, OrderStatus.READY)


@dataclass
class AggregateEntry:
    """In-flight quantity of one dish across all open orders."""

    dish: str
    count: int = 0
    order_ids: list[str] = field(default_factory=list)
    is_favorite: bool = False


def aggregate(orders: Iterable[Order], favorites: Iterable[str] = ()) -> list[AggregateEntry]:
    """Fold open orders into per-dish counts of lines not yet ready.

    Args:
        orders: Orders to fold; completed orders are skipped
        favorites: Dish names flagged as kitchen favorites in the menu

    Returns:
        Entries sorted by count (descending), then dish name
    """
    favorite_names = set(favorites)
    entries: dict[str, AggregateEntry] = {}

    for order in orders:
        if not order.is_open:
            continue
        for item in order.items:
            if item.is_ready:
                continue
            entry = entries.setdefault(item.name, AggregateEntry(dish=item.name))
            entry.count += item.quantity
            if order.id not in entry.order_ids:
                entry.order_ids.append(order.id)
            if item.is_favorite_kitchen or item.name in favorite_names:
                entry.is_favorite = True

    return sorted(entries.values(), key=lambda e: (-e.count, e.dish))


@dataclass
class KitchenTicket:
    """Kitchen-facing view of one order."""

    order_id: str
    status: OrderStatus
    type: OrderType
    table_number: int | None
    ready_count: int
    total_items: int
    elapsed_minutes: int
    urgency: UrgencyTier
    order: Order

    @property
    def progress(self) -> float:
        """Share of lines marked ready, between 0.0 and 1.0."""
        if self.total_items == 0:
            return 0.0
        return self.ready_count / self.total_items

    @property
    def all_items_ready(self) -> bool:
        """Whether the whole ticket could be marked ready (a suggestion only)."""
        return self.total_items > 0 and self.ready_count == self.total_items


def build_tickets(orders: Iterable[Order], now: datetime) -> list[KitchenTicket]:
    """Build kitchen tickets for new, preparing and ready orders, oldest first.

    Held and completed orders are not shown to the kitchen.
    """
    tickets = [
        KitchenTicket(
            order_id=order.id,
            status=order.status,
            type=order.type,
            table_number=order.table_number,
            ready_count=order.ready_count(),
            total_items=len(order.items),
            elapsed_minutes=int(elapsed_minutes(order, now)),
            urgency=classify(order, now),
            order=order,
        )
        for order in orders
        if order.status in KITCHEN_STATUSES
    ]
    tickets.sort(key=lambda t: t.order.created_at)
    return tickets


class KitchenBoard:
    """Mise en place aggregate kept current with the order store."""

    def __init__(self, store: OrderStore, favorites: Iterable[str] = ()) -> None:
        self.store = store
        self.favorites = frozenset(favorites)
        self.entries: list[AggregateEntry] = aggregate(store.orders, self.favorites)
        self._unsubscribe: Callable[[], None] = store.subscribe(self._on_cache_change)

    def _on_cache_change(self, _previous: CacheState, current: CacheState) -> None:
        self.entries = aggregate(current.orders, self.favorites)

    def count_for(self, dish: str) -> int:
        for entry in self.entries:
            if entry.dish == dish:
                return entry.count
        return 0

    def close(self) -> None:
        self._unsubscribe()
