"""Order status transitions and item readiness.

Both functions are pure: they return a TransitionResult carrying the new record
instead of mutating anything. Invalid requests are reported through the result,
never raised, so that callers can reject them before any network call.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from restaurant_order_sync.models.order_models import Order, OrderStatus, is_terminal

ALLOWED_TRANSITIONS: frozenset[tuple[OrderStatus, OrderStatus]] = frozenset(
    {
        (OrderStatus.NEW, OrderStatus.PREPARING),
        (OrderStatus.PREPARING, OrderStatus.READY),
        (OrderStatus.READY, OrderStatus.COMPLETED),
        (OrderStatus.NEW, OrderStatus.HELD),
        (OrderStatus.HELD, OrderStatus.NEW),
    }
)


@dataclass
class TransitionResult:
    """Result of validating and applying a change to one order.

    Attributes:
        success: Whether the change is permitted
        order: The updated order on success, the unchanged order otherwise
        error_message: Reason for rejection, None on success
    """

    success: bool
    order: Order
    error_message: str | None = None


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Return True if ``current -> target`` is an allowed transition."""
    return (current, target) in ALLOWED_TRANSITIONS


def advance(order: Order, target: OrderStatus, now: datetime | None = None) -> TransitionResult:
    """Move an order to a new status.

    Item readiness flags are never touched.

    Args:
        order: The order to change
        target: Requested status
        now: Timestamp for ``updated_at`` (defaults to the current time)

    Returns:
        TransitionResult; ``success`` is False for transitions outside
        ALLOWED_TRANSITIONS
    """
    if not can_transition(order.status, target):
        return TransitionResult(
            success=False,
            order=order,
            error_message=(
                f"Invalid transition for order {order.id}: "
                f"{order.status.value} -> {target.value}"
            ),
        )

    updated = order.model_copy(update={"status": target, "updated_at": now or datetime.now(UTC)})
    return TransitionResult(success=True, order=updated)


def set_item_ready(
    order: Order,
    item_id: str,
    ready: bool,
    line: int | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    """Flip the kitchen readiness flag of order lines.

    The order status is never changed, even when every line ends up ready.

    Args:
        order: The order to change
        item_id: Menu item id of the line(s) to flip
        ready: New readiness value
        line: Optional line index; when None every line with ``item_id`` is flipped
        now: Timestamp for ``updated_at`` (defaults to the current time)

    Returns:
        TransitionResult; ``success`` is False for completed orders and unknown lines
    """
    if is_terminal(order.status):
        return TransitionResult(
            success=False,
            order=order,
            error_message=f"Order {order.id} is {order.status.value} and can no longer change",
        )

    if line is not None:
        matches = [line] if 0 <= line < len(order.items) and order.items[line].id == item_id else []
    else:
        matches = [index for index, item in enumerate(order.items) if item.id == item_id]

    if not matches:
        return TransitionResult(
            success=False,
            order=order,
            error_message=f"Order {order.id} has no line for item {item_id}",
        )

    items = tuple(
        item.model_copy(update={"is_ready": ready}) if index in matches else item
        for index, item in enumerate(order.items)
    )
    updated = order.model_copy(update={"items": items, "updated_at": now or datetime.now(UTC)})
    return TransitionResult(success=True, order=updated)
