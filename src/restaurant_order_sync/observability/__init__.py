"""OpenTelemetry instrumentation and observability utilities."""

from restaurant_order_sync.observability.config import (
    configure_logging,
    setup_observability,
    shutdown_observability,
)
from restaurant_order_sync.observability.decorators import traced

__all__ = ["setup_observability", "shutdown_observability", "configure_logging", "traced"]
