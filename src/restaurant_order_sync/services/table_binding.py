"""Table occupancy derived from the open orders bound to each table.

The order service stores a table status, but the local client recomputes what it
expects that status to be from the orders it holds. Views prefer the local
expectation for immediate feedback; each refresh brings the reported value back
and any disagreement is surfaced as drift.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from restaurant_order_sync.models.order_models import Order, Table, TableStatus

logger = logging.getLogger(__name__)


def open_order_for_table(table_id: str, orders: Iterable[Order]) -> Order | None:
    """Return the first non-completed order bound to a table, if any."""
    for order in orders:
        if order.table_id == table_id and order.is_open:
            return order
    return None


def has_open_order(table_id: str, orders: Iterable[Order], exclude_order_id: str | None = None) -> bool:
    """Whether any non-completed order (other than ``exclude_order_id``) uses the table."""
    return any(
        order.table_id == table_id and order.is_open and order.id != exclude_order_id
        for order in orders
    )


def derive_table_status(table: Table, orders: Iterable[Order]) -> TableStatus:
    """Compute the status a table should have given the current orders.

    A table is occupied exactly when an open order references it. Without an open
    order, a reported ``occupied`` falls back to ``available``; ``reserved`` and
    ``available`` are kept as reported.
    """
    if open_order_for_table(table.id, orders) is not None:
        return TableStatus.OCCUPIED
    if table.status == TableStatus.OCCUPIED:
        return TableStatus.AVAILABLE
    return table.status


@dataclass(frozen=True)
class TableView:
    """Render-ready table with both the reported and the expected status.

    Attributes:
        table: Table record as last reported
        expected_status: Status derived from the open orders
        open_order_id: Id of the open order bound to the table, if any
    """

    table: Table
    expected_status: TableStatus
    open_order_id: str | None = None

    @property
    def reported_status(self) -> TableStatus:
        return self.table.status

    @property
    def status(self) -> TableStatus:
        """Status to display; the local expectation wins."""
        return self.expected_status

    @property
    def drifted(self) -> bool:
        return self.reported_status != self.expected_status


def build_table_views(tables: Iterable[Table], orders: Iterable[Order]) -> list[TableView]:
    """Build table views for every table.

    Args:
        tables: Cached tables
        orders: Cached orders

    Returns:
        List of TableView in table order
    """
    order_list = list(orders)
    views = []
    for table in tables:
        bound = open_order_for_table(table.id, order_list)
        views.append(
            TableView(
                table=table,
                expected_status=derive_table_status(table, order_list),
                open_order_id=bound.id if bound is not None else None,
            )
        )
    return views


def find_drift(tables: Iterable[Table], orders: Iterable[Order]) -> list[TableView]:
    """Return the views whose reported status disagrees with the derived one."""
    drifted = [view for view in build_table_views(tables, orders) if view.drifted]
    for view in drifted:
        logger.warning(
            f"Table {view.table.number} ({view.table.id}) reported {view.reported_status.value} "
            f"but open orders imply {view.expected_status.value}"
        )
    return drifted
