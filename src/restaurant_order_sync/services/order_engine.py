"""Mutation entry points for client surfaces.

Every user action is validated locally by the order state machine before any
network call. Status and item changes are applied to the store optimistically,
then sent to the order service; the confirmed record replaces the optimistic one,
and a rejection rolls the changed fields back. Table occupancy side effects run as
part of the same action.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from restaurant_order_sync.models.order_models import (
    DEFAULT_TAX_RATE,
    Order,
    OrderDraft,
    OrderStatus,
    PaymentStatus,
    TableStatus,
    is_terminal,
)
from restaurant_order_sync.observability import traced
from restaurant_order_sync.observability.metrics import record_optimistic_rollback
from restaurant_order_sync.services import order_state_machine
from restaurant_order_sync.services.cache_reducer import (
    OrderPatched,
    OrderPut,
    OrderRemoved,
    TablePatched,
)
from restaurant_order_sync.services.order_service_client import OrderServiceClient
from restaurant_order_sync.services.order_store import OrderStore
from restaurant_order_sync.services.table_binding import has_open_order

logger = logging.getLogger(__name__)


class MutationError(str, Enum):
    """Why a mutation did not go through."""

    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    INVALID_REQUEST = "invalid_request"
    REJECTED = "rejected"


@dataclass
class MutationResult:
    """Result of a user action.

    Attributes:
        success: Whether the order service confirmed the change
        order: The resulting order (confirmed on success, current otherwise)
        error: Failure category, None on success
        error_message: User-facing failure message, None on success
    """

    success: bool
    order: Order | None = None
    error: MutationError | None = None
    error_message: str | None = None


def _failure(error: MutationError, message: str, order: Order | None = None) -> MutationResult:
    logger.info(message)
    return MutationResult(success=False, order=order, error=error, error_message=message)


class OrderEngine:
    """Applies user actions to orders and tables, optimistically where possible."""

    def __init__(
        self,
        store: OrderStore,
        order_service_client: OrderServiceClient,
        tax_rate: Decimal = DEFAULT_TAX_RATE,
    ) -> None:
        """Initialize the OrderEngine.

        Args:
            store: Order store of this client
            order_service_client: Client for the order service
            tax_rate: Tax rate applied to new and re-submitted carts
        """
        self.store = store
        self.order_service_client = order_service_client
        self.tax_rate = tax_rate

    def _rollback(self, order_id: str, fields: dict[str, Any], operation: str) -> None:
        self.store.apply(OrderPatched(order_id=order_id, changes=fields))
        record_optimistic_rollback(operation)
        logger.warning(f"Rolled back optimistic {operation} on order {order_id}")

    def _confirm(self, order: Order) -> Order:
        self.store.apply(OrderPut(order=order))
        return self.store.get_order(order.id) or order

    @traced("order.advance")
    async def advance(self, order_id: str, target: OrderStatus) -> MutationResult:
        """Move an order to ``target`` status.

        Args:
            order_id: Order to change
            target: Requested status

        Returns:
            MutationResult; INVALID_TRANSITION is reported without any network call
        """
        order = self.store.get_order(order_id)
        if order is None:
            return _failure(MutationError.NOT_FOUND, f"Order {order_id} not found")

        transition = order_state_machine.advance(order, target)
        if not transition.success:
            return _failure(
                MutationError.INVALID_TRANSITION, transition.error_message or "", order
            )

        self.store.apply(OrderPut(order=transition.order))

        confirmed = await self.order_service_client.update_order(
            order_id, {"status": target.value}
        )
        if confirmed is None:
            self._rollback(
                order_id,
                {"status": order.status.value, "updatedAt": order.updated_at},
                "advance",
            )
            return _failure(
                MutationError.REJECTED,
                f"Could not move order {order_id} to {target.value}; the change was reverted",
                self.store.get_order(order_id),
            )

        result = self._confirm(confirmed)
        if is_terminal(result.status) and result.table_id:
            await self._release_table(result.table_id, order_id)
        return MutationResult(success=True, order=result)

    @traced("order.set_item_ready")
    async def set_item_ready(
        self,
        order_id: str,
        item_id: str,
        ready: bool,
        line: int | None = None,
    ) -> MutationResult:
        """Flip kitchen readiness of order lines without touching the status.

        Args:
            order_id: Order to change
            item_id: Menu item id of the line(s)
            ready: New readiness value
            line: Optional line index to target a single line

        Returns:
            MutationResult
        """
        order = self.store.get_order(order_id)
        if order is None:
            return _failure(MutationError.NOT_FOUND, f"Order {order_id} not found")

        change = order_state_machine.set_item_ready(order, item_id, ready, line=line)
        if not change.success:
            return _failure(MutationError.INVALID_TRANSITION, change.error_message or "", order)

        self.store.apply(OrderPut(order=change.order))

        items_payload = [item.model_dump(by_alias=True, mode="json") for item in change.order.items]
        confirmed = await self.order_service_client.update_order(order_id, {"items": items_payload})
        if confirmed is None:
            self._restore_item_flags(order, change.order)
            return _failure(
                MutationError.REJECTED,
                f"Could not update item {item_id} on order {order_id}; the change was reverted",
                self.store.get_order(order_id),
            )

        return MutationResult(success=True, order=self._confirm(confirmed))

    def _restore_item_flags(self, before: Order, optimistic: Order) -> None:
        current = self.store.get_order(before.id)
        if current is None or len(current.items) != len(before.items):
            return
        changed = {
            index
            for index, (old, new) in enumerate(zip(before.items, optimistic.items, strict=True))
            if old.is_ready != new.is_ready
        }
        restored = tuple(
            item.model_copy(update={"is_ready": before.items[index].is_ready})
            if index in changed
            else item
            for index, item in enumerate(current.items)
        )
        self.store.apply(OrderPut(order=current.model_copy(update={"items": restored})))
        record_optimistic_rollback("set_item_ready")
        logger.warning(f"Rolled back optimistic set_item_ready on order {before.id}")

    @traced("order.create")
    async def create_order(self, draft: OrderDraft) -> MutationResult:
        """Submit a cart as a new order and occupy its table.

        The order id is generated by the order service, so creation is not
        optimistic: the store only receives the confirmed record.

        Args:
            draft: The cart to submit

        Returns:
            MutationResult with the created order on success
        """
        if not draft.items:
            return _failure(MutationError.INVALID_REQUEST, "Cannot create an order with no items")

        if draft.table_id and has_open_order(draft.table_id, self.store.orders):
            table = self.store.get_table(draft.table_id)
            label = table.number if table is not None else draft.table_id
            return _failure(MutationError.INVALID_REQUEST, f"Table {label} already has an open order")

        payload = draft.to_payload(self.tax_rate)
        payload.update(
            {"status": OrderStatus.NEW.value, "paymentStatus": PaymentStatus.UNPAID.value}
        )

        created = await self.order_service_client.create_order(payload)
        if created is None:
            return _failure(MutationError.REJECTED, "Could not create the order; please try again")

        # Table goes occupied before the order lands, so no snapshot shows it free
        if created.table_id:
            self._mark_table(created.table_id, TableStatus.OCCUPIED)
        result = self._confirm(created)
        logger.info(f"Created order {result.id}")
        if result.table_id:
            await self._push_table_status(result.table_id, TableStatus.OCCUPIED)
        return MutationResult(success=True, order=result)

    @traced("order.bind_table")
    async def bind_table(self, order_id: str, table_id: str) -> MutationResult:
        """Move an open order onto a table.

        The new table is occupied and the previous one released if nothing else
        is open on it.

        Args:
            order_id: Order to move
            table_id: Destination table

        Returns:
            MutationResult
        """
        order = self.store.get_order(order_id)
        if order is None:
            return _failure(MutationError.NOT_FOUND, f"Order {order_id} not found")
        table = self.store.get_table(table_id)
        if table is None:
            return _failure(MutationError.NOT_FOUND, f"Table {table_id} not found")
        if is_terminal(order.status):
            return _failure(
                MutationError.INVALID_TRANSITION, f"Order {order_id} is already completed", order
            )
        if order.table_id == table_id:
            return MutationResult(success=True, order=order)
        if has_open_order(table_id, self.store.orders, exclude_order_id=order_id):
            return _failure(
                MutationError.INVALID_REQUEST, f"Table {table.number} already has an open order", order
            )

        previous_table_id = order.table_id
        self._mark_table(table_id, TableStatus.OCCUPIED)
        self.store.apply(
            OrderPut(order=order.model_copy(update={"table_id": table_id, "table_number": table.number}))
        )

        confirmed = await self.order_service_client.update_order(
            order_id, {"tableId": table_id, "tableNumber": table.number}
        )
        if confirmed is None:
            self._rollback(
                order_id,
                {"tableId": order.table_id, "tableNumber": order.table_number},
                "bind_table",
            )
            if not has_open_order(table_id, self.store.orders):
                self._mark_table(table_id, table.status)
            return _failure(
                MutationError.REJECTED,
                f"Could not move order {order_id} to table {table.number}; the change was reverted",
                self.store.get_order(order_id),
            )

        result = self._confirm(confirmed)
        await self._push_table_status(table_id, TableStatus.OCCUPIED)
        if previous_table_id and previous_table_id != table_id:
            await self._release_table(previous_table_id, order_id)
        return MutationResult(success=True, order=result)

    @traced("order.settle")
    async def settle_order(self, order_id: str) -> MutationResult:
        """Record full payment and, if the kitchen is done, close the order.

        A ready order is paid and completed in one step, which releases its table.
        An order still in the kitchen is only marked paid; it closes later through
        the normal ready -> completed transition.

        Args:
            order_id: Order to settle

        Returns:
            MutationResult
        """
        order = self.store.get_order(order_id)
        if order is None:
            return _failure(MutationError.NOT_FOUND, f"Order {order_id} not found")
        if is_terminal(order.status):
            return _failure(
                MutationError.INVALID_TRANSITION, f"Order {order_id} is already completed", order
            )

        changes: dict[str, Any] = {"paymentStatus": PaymentStatus.PAID.value}
        update: dict[str, Any] = {"payment_status": PaymentStatus.PAID}
        if order_state_machine.can_transition(order.status, OrderStatus.COMPLETED):
            changes["status"] = OrderStatus.COMPLETED.value
            update["status"] = OrderStatus.COMPLETED

        self.store.apply(OrderPut(order=order.model_copy(update=update)))

        confirmed = await self.order_service_client.update_order(order_id, changes)
        if confirmed is None:
            rollback: dict[str, Any] = {"paymentStatus": order.payment_status.value}
            if "status" in changes:
                rollback["status"] = order.status.value
            self._rollback(order_id, rollback, "settle")
            return _failure(
                MutationError.REJECTED,
                f"Payment for order {order_id} was not recorded; please try again",
                self.store.get_order(order_id),
            )

        result = self._confirm(confirmed)
        if is_terminal(result.status) and result.table_id:
            await self._release_table(result.table_id, order_id)
        return MutationResult(success=True, order=result)

    @traced("order.update_payment_status")
    async def update_payment_status(self, order_id: str, status: PaymentStatus) -> MutationResult:
        """Set the payment status of an open order (unpaid, partial or paid).

        Only the payment status is written; the order status is never touched.

        Args:
            order_id: Order to change
            status: New payment status

        Returns:
            MutationResult
        """
        order = self.store.get_order(order_id)
        if order is None:
            return _failure(MutationError.NOT_FOUND, f"Order {order_id} not found")
        if is_terminal(order.status):
            return _failure(
                MutationError.INVALID_TRANSITION, f"Order {order_id} is already completed", order
            )
        if order.payment_status == status:
            return MutationResult(success=True, order=order)

        self.store.apply(OrderPut(order=order.model_copy(update={"payment_status": status})))

        confirmed = await self.order_service_client.update_order(
            order_id, {"paymentStatus": status.value}
        )
        if confirmed is None:
            self._rollback(
                order_id, {"paymentStatus": order.payment_status.value}, "update_payment_status"
            )
            return _failure(
                MutationError.REJECTED,
                f"Could not mark order {order_id} as {status.value}; the change was reverted",
                self.store.get_order(order_id),
            )

        return MutationResult(success=True, order=self._confirm(confirmed))

    @traced("order.cancel")
    async def cancel_order(self, order_id: str) -> MutationResult:
        """Cancel (delete) an open order and release its table.

        Cancellation is not optimistic: the order leaves the cache only once the
        order service confirms the deletion.

        Args:
            order_id: Order to cancel

        Returns:
            MutationResult with the removed order
        """
        order = self.store.get_order(order_id)
        if order is None:
            return _failure(MutationError.NOT_FOUND, f"Order {order_id} not found")
        if is_terminal(order.status):
            return _failure(
                MutationError.INVALID_TRANSITION, f"Order {order_id} is already completed", order
            )

        if not await self.order_service_client.delete_order(order_id):
            return _failure(
                MutationError.REJECTED,
                f"Could not cancel order {order_id}; please try again",
                self.store.get_order(order_id),
            )

        self.store.apply(OrderRemoved(order_id=order_id))
        logger.info(f"Cancelled order {order_id}")
        if order.table_id:
            await self._release_table(order.table_id, order_id)
        return MutationResult(success=True, order=order)

    def reopen_order(self, order_id: str) -> OrderDraft | None:
        """Return an editable cart for an open order, or None if it cannot be edited."""
        order = self.store.get_order(order_id)
        if order is None or is_terminal(order.status):
            return None
        return OrderDraft.from_order(order)

    @traced("order.resubmit")
    async def resubmit_order(self, order_id: str, draft: OrderDraft) -> MutationResult:
        """Save an edited cart back onto its order.

        Totals are recomputed; status and payment status are left as they are.

        Args:
            order_id: Order being edited
            draft: The edited cart

        Returns:
            MutationResult
        """
        order = self.store.get_order(order_id)
        if order is None:
            return _failure(MutationError.NOT_FOUND, f"Order {order_id} not found")
        if is_terminal(order.status):
            return _failure(
                MutationError.INVALID_TRANSITION, f"Order {order_id} is already completed", order
            )
        if not draft.items:
            return _failure(MutationError.INVALID_REQUEST, "Cannot save an order with no items", order)
        if draft.table_id and draft.table_id != order.table_id and has_open_order(
            draft.table_id, self.store.orders, exclude_order_id=order_id
        ):
            return _failure(
                MutationError.INVALID_REQUEST, "The selected table already has an open order", order
            )

        confirmed = await self.order_service_client.update_order(
            order_id, draft.to_payload(self.tax_rate)
        )
        if confirmed is None:
            return _failure(
                MutationError.REJECTED, f"Could not save changes to order {order_id}", order
            )

        moved_to = confirmed.table_id if confirmed.table_id != order.table_id else None
        if moved_to:
            self._mark_table(moved_to, TableStatus.OCCUPIED)
        result = self._confirm(confirmed)
        if moved_to:
            await self._push_table_status(moved_to, TableStatus.OCCUPIED)
        if order.table_id and order.table_id != result.table_id:
            await self._release_table(order.table_id, order_id)
        return MutationResult(success=True, order=result)

    async def _release_table(self, table_id: str, order_id: str) -> None:
        if has_open_order(table_id, self.store.orders, exclude_order_id=order_id):
            logger.info(f"Table {table_id} still has an open order; leaving it occupied")
            return
        self._mark_table(table_id, TableStatus.AVAILABLE)
        await self._push_table_status(table_id, TableStatus.AVAILABLE)

    def _mark_table(self, table_id: str, status: TableStatus) -> None:
        self.store.apply(TablePatched(table_id=table_id, changes={"status": status.value}))

    async def _push_table_status(self, table_id: str, status: TableStatus) -> None:
        confirmed = await self.order_service_client.update_table(table_id, status)
        if confirmed is None:
            # Derived occupancy keeps the view right; the next refresh restores the reported value
            logger.warning(f"Order service did not confirm table {table_id} as {status.value}")
            return
        self.store.apply(
            TablePatched(table_id=table_id, changes=confirmed.model_dump(by_alias=True))
        )
