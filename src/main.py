"""Main application entry point for the restaurant order sync service.

This module provides the FastAPI application factory and configuration
for running a client surface's sync process locally or in production.
"""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from decimal import Decimal

from fastapi import FastAPI

from restaurant_order_sync.adapters.base_channel import PushChannel
from restaurant_order_sync.adapters.redis_channel import RedisPushChannel
from restaurant_order_sync.handlers.api_handler import create_app
from restaurant_order_sync.observability import (
    configure_logging,
    setup_observability,
    shutdown_observability,
)
from restaurant_order_sync.services.alert_trigger import (
    AlertTrigger,
    LoggingAlertSink,
    RecentAlertsFeed,
)
from restaurant_order_sync.services.kitchen_view import KitchenBoard
from restaurant_order_sync.services.order_engine import OrderEngine
from restaurant_order_sync.services.order_service_client import OrderServiceClient
from restaurant_order_sync.services.order_store import OrderStore
from restaurant_order_sync.services.sync_client import SyncClient
from restaurant_order_sync.services.urgency import UrgencyTicker

logger = logging.getLogger(__name__)


def create_push_channel() -> PushChannel | None:
    """Create the push channel from environment variables.

    Returns:
        Redis push channel, or None when REDIS_URL is not set (polling only)
    """
    redis_url = os.getenv("REDIS_URL")
    if not redis_url:
        logger.warning("REDIS_URL not configured - running with periodic refresh only")
        return None

    channel_name = os.getenv("ORDER_EVENTS_CHANNEL", "orders:events")
    logger.info(f"Push channel configured - channel: {channel_name}")
    return RedisPushChannel(redis_url=redis_url, channel_name=channel_name)


def parse_favorites(raw: str | None) -> list[str]:
    """Parse the comma-separated KITCHEN_FAVORITES list."""
    if not raw:
        return []
    return [name.strip() for name in raw.split(",") if name.strip()]


def create_application() -> FastAPI:
    """Create and configure the FastAPI application with all dependencies.

    This factory function:
    1. Configures logging
    2. Creates the order service client and push channel
    3. Creates the order store and the services observing it
    4. Creates the FastAPI app with a lifespan running the background loops
    5. Sets up observability

    Returns:
        Configured FastAPI application instance

    Raises:
        ValueError: If the order service is not configured
    """
    log_level = os.getenv("LOG_LEVEL", "INFO")
    configure_logging(log_level)

    logger.info("Initializing restaurant order sync...")

    order_service_url = os.getenv("ORDER_SERVICE_BASE_URL")
    order_service_api_key = os.getenv("ORDER_SERVICE_API_KEY")

    if not order_service_url or not order_service_api_key:
        raise ValueError(
            "ORDER_SERVICE_BASE_URL and ORDER_SERVICE_API_KEY must be set in environment"
        )

    order_service_client = OrderServiceClient(
        base_url=order_service_url,
        api_key=order_service_api_key,
        timeout_seconds=float(os.getenv("ORDER_SERVICE_TIMEOUT_SECONDS", "10")),
    )

    logger.info(f"Order service client configured - URL: {order_service_url}")

    store = OrderStore()

    sync_client = SyncClient(
        order_service_client=order_service_client,
        store=store,
        push_channel=create_push_channel(),
        refresh_interval_seconds=float(os.getenv("REFRESH_INTERVAL_SECONDS", "5")),
        failure_threshold=int(os.getenv("REFRESH_FAILURE_THRESHOLD", "3")),
        reconnect_base_seconds=float(os.getenv("PUSH_RECONNECT_BASE_SECONDS", "1")),
        reconnect_max_seconds=float(os.getenv("PUSH_RECONNECT_MAX_SECONDS", "30")),
    )

    engine = OrderEngine(
        store=store,
        order_service_client=order_service_client,
        tax_rate=Decimal(os.getenv("TAX_RATE", "0.10")),
    )

    urgency_ticker = UrgencyTicker(
        store=store,
        interval_seconds=float(os.getenv("URGENCY_TICK_SECONDS", "10")),
    )

    favorites = parse_favorites(os.getenv("KITCHEN_FAVORITES"))
    kitchen_board = KitchenBoard(store=store, favorites=favorites)

    alerts_feed = RecentAlertsFeed(limit=int(os.getenv("RECENT_ALERTS_LIMIT", "50")))
    alert_trigger = AlertTrigger(store=store, sinks=[LoggingAlertSink(), alerts_feed])

    logger.info("Services initialized")

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        sync_client.start()
        urgency_ticker.start()
        try:
            yield
        finally:
            await urgency_ticker.stop()
            await sync_client.stop()
            shutdown_observability()

    app = create_app(
        store=store,
        engine=engine,
        sync_client=sync_client,
        urgency_ticker=urgency_ticker,
        kitchen_board=kitchen_board,
        alerts_feed=alerts_feed,
        lifespan=lifespan,
    )
    app.state.alert_trigger = alert_trigger

    setup_observability(app)

    logger.info("Restaurant order sync initialized successfully")

    return app


# Create the FastAPI application instance (only when not in test mode)
# This prevents the app from being created during test collection
if os.getenv("ENVIRONMENT") != "test":  # noqa: SIM108
    app = create_application()
else:
    # Create a placeholder app for test imports
    app = FastAPI()


if __name__ == "__main__":
    """Run the application with uvicorn when executed directly."""
    import uvicorn

    port = int(os.getenv("PORT", "8001"))
    host = os.getenv("HOST", "0.0.0.0")

    logger.info(f"Starting development server on {host}:{port}")
    logger.info(f"API documentation available at http://{host}:{port}/docs")

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=True,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
