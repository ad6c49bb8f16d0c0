"""FastAPI application serving the render-ready order view to a client surface."""

import logging
from datetime import datetime
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from restaurant_order_sync.models.order_models import (
    Order,
    OrderDraft,
    OrderItem,
    OrderStatus,
    OrderTotals,
    OrderType,
    PaymentStatus,
    TableStatus,
    compute_totals,
)
from restaurant_order_sync.services.alert_trigger import RecentAlertsFeed
from restaurant_order_sync.services.kitchen_view import KitchenBoard, build_tickets
from restaurant_order_sync.services.order_engine import MutationError, MutationResult, OrderEngine
from restaurant_order_sync.services.order_store import OrderStore
from restaurant_order_sync.services.sync_client import SyncClient
from restaurant_order_sync.services.table_binding import build_table_views
from restaurant_order_sync.services.urgency import UrgencyTicker, UrgencyTier

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    MutationError.NOT_FOUND: 404,
    MutationError.INVALID_TRANSITION: 409,
    MutationError.INVALID_REQUEST: 400,
    MutationError.REJECTED: 502,
}


class ApiModel(BaseModel):
    """Base for API payloads (camelCase on the wire, like the order service)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(ApiModel):
    """Health check response model."""

    status: str
    push_connected: bool
    degraded: bool
    consecutive_refresh_failures: int
    last_refresh_at: datetime | None = None
    order_count: int
    table_count: int


class RefreshResponse(ApiModel):
    """Response model for a manual refresh."""

    success: bool
    order_count: int
    table_count: int


class StatusUpdateRequest(ApiModel):
    """Request body for a status change."""

    status: OrderStatus


class ItemReadyRequest(ApiModel):
    """Request body for flipping item readiness."""

    ready: bool
    line: int | None = Field(default=None, ge=0)


class TableBindRequest(ApiModel):
    """Request body for moving an order onto a table."""

    table_id: str


class PaymentStatusRequest(ApiModel):
    """Request body for a payment status change."""

    payment_status: PaymentStatus


class OrderResponse(ApiModel):
    """An order together with its current urgency tier."""

    order: Order
    urgency: UrgencyTier


class TableViewResponse(ApiModel):
    """A table as displayed: derived status plus the reported one."""

    id: str
    number: int
    floor_id: str | None = None
    capacity: int
    status: TableStatus
    reported_status: TableStatus
    open_order_id: str | None = None
    drifted: bool


class TicketResponse(ApiModel):
    """Kitchen ticket view model."""

    order_id: str
    status: OrderStatus
    type: OrderType
    table_number: int | None = None
    ready_count: int
    total_items: int
    progress: float
    all_items_ready: bool
    elapsed_minutes: int
    urgency: UrgencyTier
    items: list[OrderItem]


class AggregateEntryResponse(ApiModel):
    """Mise en place entry for one dish."""

    dish: str
    count: int
    order_ids: list[str]
    is_favorite: bool


class AlertResponse(ApiModel):
    """New-order alert as consumed by the surface's toast and sound."""

    sequence: int
    new_orders: int
    order_count: int
    message: str
    play_sound: bool
    raised_at: datetime


class CartResponse(ApiModel):
    """An order re-opened into an editable cart."""

    order_id: str
    draft: OrderDraft
    totals: OrderTotals


def _raise_for_failure(result: MutationResult) -> None:
    if result.success:
        return
    status_code = ERROR_STATUS_CODES.get(result.error or MutationError.REJECTED, 502)
    raise HTTPException(status_code=status_code, detail=result.error_message)


def create_app(
    store: OrderStore,
    engine: OrderEngine,
    sync_client: SyncClient,
    urgency_ticker: UrgencyTicker,
    kitchen_board: KitchenBoard,
    alerts_feed: RecentAlertsFeed,
    lifespan: Any = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        store: Order store holding the local cache
        engine: Mutation entry points
        sync_client: Synchronization client (for refresh and connectivity)
        urgency_ticker: Urgency board kept current on a timer
        kitchen_board: Mise en place aggregate
        alerts_feed: Recent new-order alerts
        lifespan: Optional lifespan context manager starting background tasks

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Restaurant Order Sync",
        description="Live order and table view for POS, kitchen and floor surfaces",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Services in app state for access in route handlers
    app.state.store = store
    app.state.engine = engine
    app.state.sync_client = sync_client
    app.state.urgency_ticker = urgency_ticker
    app.state.kitchen_board = kitchen_board
    app.state.alerts_feed = alerts_feed

    def require_order(order_id: str) -> Order:
        order: Order | None = app.state.store.get_order(order_id)
        if order is None:
            raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
        return order

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint.

        Returns:
            Connectivity indicator and cache sizes
        """
        connectivity = app.state.sync_client.connectivity
        return HealthResponse(
            status="degraded" if connectivity.degraded else "healthy",
            push_connected=connectivity.push_connected,
            degraded=connectivity.degraded,
            consecutive_refresh_failures=connectivity.consecutive_refresh_failures,
            last_refresh_at=connectivity.last_refresh_at,
            order_count=len(app.state.store.orders),
            table_count=len(app.state.store.tables),
        )

    @app.post("/refresh", response_model=RefreshResponse, tags=["Sync"])
    async def trigger_refresh() -> RefreshResponse:
        """Run a full refresh immediately, outside the regular interval."""
        logger.info("Manual refresh triggered")
        success = await app.state.sync_client.refresh()
        return RefreshResponse(
            success=success,
            order_count=len(app.state.store.orders),
            table_count=len(app.state.store.tables),
        )

    @app.get("/orders", response_model=list[OrderResponse], tags=["Orders"])
    async def list_orders(status: OrderStatus | None = None) -> list[OrderResponse]:
        """Current order snapshot, newest first.

        Args:
            status: Optional status filter
        """
        ticker: UrgencyTicker = app.state.urgency_ticker
        return [
            OrderResponse(order=order, urgency=ticker.tier_for(order.id))
            for order in app.state.store.orders
            if status is None or order.status == status
        ]

    @app.get("/tables", response_model=list[TableViewResponse], tags=["Tables"])
    async def list_tables() -> list[TableViewResponse]:
        """Tables with occupancy derived from the open orders."""
        views = build_table_views(app.state.store.tables, app.state.store.orders)
        return [
            TableViewResponse(
                id=view.table.id,
                number=view.table.number,
                floor_id=view.table.floor_id,
                capacity=view.table.capacity,
                status=view.status,
                reported_status=view.reported_status,
                open_order_id=view.open_order_id,
                drifted=view.drifted,
            )
            for view in views
        ]

    @app.get("/kitchen/tickets", response_model=list[TicketResponse], tags=["Kitchen"])
    async def kitchen_tickets() -> list[TicketResponse]:
        """Kitchen tickets for new, preparing and ready orders, oldest first."""
        now = app.state.urgency_ticker.clock()
        return [
            TicketResponse(
                order_id=ticket.order_id,
                status=ticket.status,
                type=ticket.type,
                table_number=ticket.table_number,
                ready_count=ticket.ready_count,
                total_items=ticket.total_items,
                progress=ticket.progress,
                all_items_ready=ticket.all_items_ready,
                elapsed_minutes=ticket.elapsed_minutes,
                urgency=ticket.urgency,
                items=list(ticket.order.items),
            )
            for ticket in build_tickets(app.state.store.orders, now)
        ]

    @app.get(
        "/kitchen/mise-en-place",
        response_model=list[AggregateEntryResponse],
        tags=["Kitchen"],
    )
    async def mise_en_place() -> list[AggregateEntryResponse]:
        """Dishes still to prepare across all open orders."""
        return [
            AggregateEntryResponse(
                dish=entry.dish,
                count=entry.count,
                order_ids=entry.order_ids,
                is_favorite=entry.is_favorite,
            )
            for entry in app.state.kitchen_board.entries
        ]

    @app.get("/alerts", response_model=list[AlertResponse], tags=["Alerts"])
    async def recent_alerts(since: int = 0) -> list[AlertResponse]:
        """New-order alerts raised after sequence number ``since``."""
        return [
            AlertResponse(
                sequence=alert.sequence,
                new_orders=alert.new_orders,
                order_count=alert.order_count,
                message=alert.message,
                play_sound=alert.play_sound,
                raised_at=alert.raised_at,
            )
            for alert in app.state.alerts_feed.since(since)
        ]

    @app.post("/orders", response_model=Order, status_code=201, tags=["Orders"])
    async def create_order(draft: OrderDraft) -> Order:
        """Submit a cart as a new order.

        Raises:
            HTTPException: 400 for an invalid cart, 502 if the order service rejects it
        """
        result = await app.state.engine.create_order(draft)
        _raise_for_failure(result)
        return result.order

    @app.post("/orders/{order_id}/status", response_model=Order, tags=["Orders"])
    async def update_status(order_id: str, request: StatusUpdateRequest) -> Order:
        """Advance an order through its lifecycle.

        Raises:
            HTTPException: 404 unknown order, 409 invalid transition, 502 rejected
        """
        result = await app.state.engine.advance(order_id, request.status)
        _raise_for_failure(result)
        return result.order

    @app.post(
        "/orders/{order_id}/items/{item_id}/ready",
        response_model=Order,
        tags=["Orders"],
    )
    async def set_item_ready(order_id: str, item_id: str, request: ItemReadyRequest) -> Order:
        """Flip kitchen readiness of an order line; the order status is left unchanged."""
        result = await app.state.engine.set_item_ready(
            order_id, item_id, request.ready, line=request.line
        )
        _raise_for_failure(result)
        return result.order

    @app.post("/orders/{order_id}/table", response_model=Order, tags=["Tables"])
    async def bind_table(order_id: str, request: TableBindRequest) -> Order:
        """Move an order onto a table."""
        result = await app.state.engine.bind_table(order_id, request.table_id)
        _raise_for_failure(result)
        return result.order

    @app.post("/orders/{order_id}/settle", response_model=Order, tags=["Orders"])
    async def settle_order(order_id: str) -> Order:
        """Record payment, closing the order if the kitchen has finished it."""
        result = await app.state.engine.settle_order(order_id)
        _raise_for_failure(result)
        return result.order

    @app.post("/orders/{order_id}/payment", response_model=Order, tags=["Orders"])
    async def update_payment_status(order_id: str, request: PaymentStatusRequest) -> Order:
        """Set the payment status (unpaid, partial or paid) without closing the order."""
        result = await app.state.engine.update_payment_status(order_id, request.payment_status)
        _raise_for_failure(result)
        return result.order

    @app.delete("/orders/{order_id}", status_code=204, tags=["Orders"])
    async def cancel_order(order_id: str) -> None:
        """Cancel an open order."""
        result = await app.state.engine.cancel_order(order_id)
        _raise_for_failure(result)

    @app.get("/orders/{order_id}/cart", response_model=CartResponse, tags=["Orders"])
    async def reopen_order(order_id: str) -> CartResponse:
        """Re-open an order into an editable cart with recomputed totals.

        Raises:
            HTTPException: 404 unknown order, 409 if the order is already completed
        """
        require_order(order_id)
        draft = app.state.engine.reopen_order(order_id)
        if draft is None:
            raise HTTPException(status_code=409, detail=f"Order {order_id} is already completed")
        totals = compute_totals(draft.items, tax_rate=app.state.engine.tax_rate, discount=draft.discount)
        return CartResponse(order_id=order_id, draft=draft, totals=totals)

    @app.put("/orders/{order_id}", response_model=Order, tags=["Orders"])
    async def resubmit_order(order_id: str, draft: OrderDraft) -> Order:
        """Save an edited cart back onto its order."""
        result = await app.state.engine.resubmit_order(order_id, draft)
        _raise_for_failure(result)
        return result.order

    return app
