"""Custom metrics for the order sync engine."""

from opentelemetry import metrics

meter = metrics.get_meter("order-sync")

refresh_success_counter = meter.create_counter(
    name="order_refresh_success_total",
    description="Total number of successful full refreshes by resource",
    unit="1",
)

refresh_failure_counter = meter.create_counter(
    name="order_refresh_failure_total",
    description="Total number of failed full refreshes by resource",
    unit="1",
)

refresh_duration_histogram = meter.create_histogram(
    name="order_refresh_duration_seconds",
    description="Duration of full refresh cycles",
    unit="s",
)

push_event_counter = meter.create_counter(
    name="push_events_total",
    description="Push events received, by event type and outcome",
    unit="1",
)

push_connection_gauge = meter.create_up_down_counter(
    name="push_channel_connected",
    description="1 while the push channel is connected, 0 otherwise",
    unit="1",
)

optimistic_rollback_counter = meter.create_counter(
    name="optimistic_rollback_total",
    description="Optimistic writes rolled back after collaborator rejection",
    unit="1",
)

new_order_alert_counter = meter.create_counter(
    name="new_order_alerts_total",
    description="New-order alerts raised",
    unit="1",
)

table_drift_counter = meter.create_counter(
    name="table_status_drift_total",
    description="Tables whose reported status disagreed with the derived status after a refresh",
    unit="1",
)


def record_refresh(resource: str, success: bool) -> None:
    """Record the outcome of refreshing one resource.

    Args:
        resource: "orders" or "tables"
        success: Whether the fetch succeeded
    """
    counter = refresh_success_counter if success else refresh_failure_counter
    counter.add(1, {"resource": resource})


def record_refresh_duration(duration_seconds: float) -> None:
    """Record the duration of a full refresh cycle."""
    refresh_duration_histogram.record(duration_seconds)


def record_push_event(event_type: str, outcome: str) -> None:
    """Record a push event.

    Args:
        event_type: Event type, or "unknown" for unparseable messages
        outcome: "applied", "ignored" or "dropped"
    """
    push_event_counter.add(1, {"event_type": event_type, "outcome": outcome})


def record_push_connection_change(change: int) -> None:
    """Record the push channel connecting (+1) or disconnecting (-1)."""
    push_connection_gauge.add(change)


def record_optimistic_rollback(operation: str) -> None:
    """Record a rolled-back optimistic write.

    Args:
        operation: The mutation that was rolled back (e.g. "advance")
    """
    optimistic_rollback_counter.add(1, {"operation": operation})


def record_new_order_alert(new_orders: int) -> None:
    """Record a raised new-order alert.

    Args:
        new_orders: How many orders the alert announced
    """
    new_order_alert_counter.add(1, {"batch": "single" if new_orders == 1 else "multiple"})


def record_table_drift(count: int) -> None:
    """Record tables found drifting after a refresh."""
    if count > 0:
        table_drift_counter.add(count)
