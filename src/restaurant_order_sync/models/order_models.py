"""Order, order item and table models.

These models represent the records held in the local order/table cache. Records are
frozen: every change produces a new instance so that cache snapshots handed to
consumers stay read-only.
"""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)
from pydantic.alias_generators import to_camel

from restaurant_order_sync.models.event_models import normalize_id

DEFAULT_TAX_RATE = Decimal("0.10")
CENTS = Decimal("0.01")


class OrderType(str, Enum):
    """Enumeration of order types."""

    DINE_IN = "dine-in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"


class OrderStatus(str, Enum):
    """Enumeration of order lifecycle states."""

    NEW = "new"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    HELD = "held"


class PaymentStatus(str, Enum):
    """Enumeration of payment states."""

    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class TableStatus(str, Enum):
    """Enumeration of table occupancy states."""

    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"


class TableShape(str, Enum):
    """Enumeration of table shapes on the floor plan."""

    CIRCLE = "circle"
    SQUARE = "square"
    RECTANGLE = "rectangle"


def is_terminal(status: OrderStatus) -> bool:
    """Return True if no further mutation is permitted in this status."""
    return status == OrderStatus.COMPLETED


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class WireModel(BaseModel):
    """Base for records exchanged with the order service.

    Field names are snake_case in Python and camelCase on the wire; both spellings
    are accepted on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    @classmethod
    def wire_keys(cls, changes: dict[str, Any]) -> dict[str, Any]:
        """Map a partial update onto this model's wire keys.

        Keys may use either the field name or its alias. Unknown keys and the
        identity field are dropped.

        Args:
            changes: Partial field values keyed by field name or alias

        Returns:
            dict: The same values keyed by alias
        """
        lookup: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            if name == "id":
                continue
            alias = field.alias or name
            lookup[name] = alias
            lookup[alias] = alias

        mapped: dict[str, Any] = {}
        for key, value in changes.items():
            if key in lookup:
                mapped[lookup[key]] = value
        return mapped

    def merged(self, changes: dict[str, Any]) -> "WireModel":
        """Return a validated copy with the given partial fields overlaid.

        Fields absent from ``changes`` keep their current values.

        Raises:
            pydantic.ValidationError: If the merged record is invalid
        """
        data = self.model_dump(by_alias=True)
        data.update(self.wire_keys(changes))
        return type(self).model_validate(data)


class OrderItem(WireModel):
    """A single order line.

    The ``id`` references a menu item and is not unique within an order.
    """

    id: str = Field(..., validation_alias=AliasChoices("id", "_id", "menuItemId"))
    name: str = Field(..., description="Dish name")
    price: Decimal = Field(..., description="Unit price", ge=0)
    quantity: int = Field(..., description="Number of portions", gt=0)
    is_ready: bool = Field(default=False, description="Kitchen progress flag")
    notes: str | None = None
    category: str | None = None
    is_favorite_kitchen: bool = False
    plating_media_url: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def normalize_item_id(cls, v: Any) -> Any:
        """Collapse embedded identifier shapes into a plain string."""
        return normalize_id(v) or v


class Position(BaseModel):
    """Floor plan coordinates."""

    model_config = ConfigDict(frozen=True)

    x: float = 0
    y: float = 0


class Table(WireModel):
    """Restaurant table as reported by the order service."""

    id: str = Field(..., validation_alias=AliasChoices("id", "_id"))
    number: int
    floor_id: str | None = None
    capacity: int = Field(default=0, ge=0)
    shape: TableShape = TableShape.SQUARE
    status: TableStatus = TableStatus.AVAILABLE
    position: Position = Field(default_factory=Position)
    rotation: float | None = None

    @field_validator("id", "floor_id", mode="before")
    @classmethod
    def normalize_ids(cls, v: Any) -> Any:
        """Collapse embedded identifier shapes into a plain string."""
        if v is None:
            return None
        return normalize_id(v) or v


class Order(WireModel):
    """A customer order.

    ``total`` is always derived from ``subtotal + tax - discount``; a ``total`` sent
    by the order service is ignored on input.
    """

    id: str = Field(..., validation_alias=AliasChoices("id", "_id"))
    type: OrderType = OrderType.DINE_IN
    status: OrderStatus = OrderStatus.NEW
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    items: tuple[OrderItem, ...] = ()
    subtotal: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    created_at: datetime
    updated_at: datetime | None = None
    table_id: str | None = None
    table_number: int | None = None
    floor_name: str | None = None
    cashier_name: str | None = None
    customer_name: str | None = None
    delivery_address: str | None = None
    delivery_phone: str | None = None
    notes: str | None = None
    source: str = "pos"

    @field_validator("id", "table_id", mode="before")
    @classmethod
    def normalize_ids(cls, v: Any) -> Any:
        """Collapse embedded identifier shapes into a plain string."""
        if v is None:
            return None
        return normalize_id(v) or v

    @field_validator("created_at", "updated_at")
    @classmethod
    def ensure_timezone(cls, v: datetime | None) -> datetime | None:
        """Treat naive timestamps as UTC."""
        return _as_utc(v)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> Decimal:
        """Amount due: subtotal plus tax minus discount."""
        return self.subtotal + self.tax - self.discount

    @property
    def is_open(self) -> bool:
        """Whether the order is still active (not completed)."""
        return not is_terminal(self.status)

    def ready_count(self) -> int:
        """Number of lines flagged ready by the kitchen."""
        return sum(1 for item in self.items if item.is_ready)


class OrderTotals(BaseModel):
    """Computed monetary totals for a set of order lines."""

    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal


def compute_totals(
    items: list[OrderItem] | tuple[OrderItem, ...],
    tax_rate: Decimal | float | str = DEFAULT_TAX_RATE,
    discount: Decimal | float | str = Decimal("0"),
) -> OrderTotals:
    """Compute subtotal, tax and total for order lines.

    Args:
        items: Order lines
        tax_rate: Tax rate as a fraction (0.10 for 10%)
        discount: Absolute discount subtracted from the total

    Returns:
        OrderTotals with tax rounded half-up to cents
    """
    rate = Decimal(str(tax_rate))
    discount_amount = Decimal(str(discount))
    subtotal = sum((item.price * item.quantity for item in items), Decimal("0"))
    tax = (subtotal * rate).quantize(CENTS, rounding=ROUND_HALF_UP)
    return OrderTotals(
        subtotal=subtotal,
        tax=tax,
        discount=discount_amount,
        total=subtotal + tax - discount_amount,
    )


class OrderDraft(WireModel):
    """A cart being assembled (or re-opened) at the POS before submission."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=False)

    type: OrderType = OrderType.DINE_IN
    items: list[OrderItem] = Field(default_factory=list)
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    table_id: str | None = None
    table_number: int | None = None
    floor_name: str | None = None
    cashier_name: str | None = None
    customer_name: str | None = None
    delivery_address: str | None = None
    delivery_phone: str | None = None
    notes: str | None = None
    source: str = "pos"

    @classmethod
    def from_order(cls, order: Order) -> "OrderDraft":
        """Re-open an existing order into an editable cart."""
        return cls(
            type=order.type,
            items=list(order.items),
            discount=order.discount,
            table_id=order.table_id,
            table_number=order.table_number,
            floor_name=order.floor_name,
            cashier_name=order.cashier_name,
            customer_name=order.customer_name,
            delivery_address=order.delivery_address,
            delivery_phone=order.delivery_phone,
            notes=order.notes,
            source=order.source,
        )

    def to_payload(self, tax_rate: Decimal | float | str = DEFAULT_TAX_RATE) -> dict[str, Any]:
        """Build the order-service payload for this cart, including totals.

        Args:
            tax_rate: Tax rate as a fraction

        Returns:
            dict: JSON-serializable payload with camelCase keys
        """
        totals = compute_totals(self.items, tax_rate=tax_rate, discount=self.discount)
        payload = self.model_dump(by_alias=True, mode="json", exclude_none=True)
        payload.update(
            {
                "subtotal": str(totals.subtotal),
                "tax": str(totals.tax),
                "discount": str(totals.discount),
                "total": str(totals.total),
            }
        )
        return payload
