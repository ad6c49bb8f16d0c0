"""Client for interacting with the Order Service API."""

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from restaurant_order_sync.models.order_models import Order, Table, TableStatus

logger = logging.getLogger(__name__)


class OrderServiceClient:
    """HTTP client for the order service that owns the authoritative order set.

    Every method returns None (or False) on failure instead of raising, so that the
    refresh loop and the optimistic write path can decide what a failure means.
    Responses may be wrapped in a ``{"success", "data", "error"}`` envelope or be
    a bare JSON body.
    """

    def __init__(self, base_url: str, api_key: str, timeout_seconds: float = 10.0) -> None:
        """Initialize the Order Service client.

        Args:
            base_url: Base URL of the Order Service API (e.g., "https://pos.example.com/api")
            api_key: API key sent in the X-API-Key header
            timeout_seconds: Per-request timeout
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds

    @property
    def headers(self) -> dict[str, str]:
        return {"X-API-Key": self.api_key, "Content-Type": "application/json"}

    def _unwrap(self, response: httpx.Response) -> Any:
        """Return the payload of a response, unwrapping the envelope if present.

        Raises:
            ValueError: If the envelope reports failure or the body is not JSON
        """
        if not response.content:
            return None
        body = response.json()
        if isinstance(body, dict) and "success" in body:
            if not body.get("success"):
                raise ValueError(body.get("error") or "order service reported failure")
            return body.get("data")
        return body

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> Any:
        url = f"{self.base_url}{path}"
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.request(method, url, headers=self.headers, json=json)
            response.raise_for_status()
            return self._unwrap(response)

    async def get_orders(self) -> list[Order] | None:
        """Fetch the complete order list.

        Returns:
            List of Order objects, or None on failure. Individual malformed records
            are skipped.
        """
        try:
            data = await self._request("GET", "/orders")
        except (httpx.HTTPStatusError, httpx.RequestError, ValueError) as e:
            logger.error(f"Failed to fetch orders: {e}")  # pragma: no cover
            return None

        return self._parse_list(data, Order, "order")

    async def get_tables(self) -> list[Table] | None:
        """Fetch the complete table list.

        Returns:
            List of Table objects, or None on failure
        """
        try:
            data = await self._request("GET", "/tables")
        except (httpx.HTTPStatusError, httpx.RequestError, ValueError) as e:
            logger.error(f"Failed to fetch tables: {e}")  # pragma: no cover
            return None

        return self._parse_list(data, Table, "table")

    async def create_order(self, payload: dict[str, Any]) -> Order | None:
        """Create an order.

        Args:
            payload: Order fields (see OrderDraft.to_payload)

        Returns:
            The authoritative Order including its generated id, or None on failure
        """
        try:
            data = await self._request("POST", "/orders", json=payload)
            return Order.model_validate(data)
        except (httpx.HTTPStatusError, httpx.RequestError, ValueError) as e:
            logger.error(f"Failed to create order: {e}")  # pragma: no cover
            return None

    async def update_order(self, order_id: str, changes: dict[str, Any]) -> Order | None:
        """Apply a partial update to an order.

        Args:
            order_id: Order to update
            changes: Fields to change (status, items, paymentStatus, ...)

        Returns:
            The authoritative updated Order, or None on rejection or failure
        """
        try:
            data = await self._request("PATCH", f"/orders/{order_id}", json=changes)
            return Order.model_validate(data)
        except (httpx.HTTPStatusError, httpx.RequestError, ValueError) as e:
            logger.error(f"Failed to update order {order_id}: {e}")  # pragma: no cover
            return None

    async def delete_order(self, order_id: str) -> bool:
        """Delete (cancel) an order.

        Returns:
            bool: True if the order service accepted the deletion
        """
        try:
            await self._request("DELETE", f"/orders/{order_id}")
            return True
        except (httpx.HTTPStatusError, httpx.RequestError, ValueError) as e:
            logger.error(f"Failed to delete order {order_id}: {e}")  # pragma: no cover
            return False

    async def update_table(self, table_id: str, status: TableStatus) -> Table | None:
        """Set a table's status.

        Returns:
            The authoritative updated Table, or None on failure
        """
        try:
            data = await self._request("PATCH", f"/tables/{table_id}", json={"status": status.value})
            return Table.model_validate(data)
        except (httpx.HTTPStatusError, httpx.RequestError, ValueError) as e:
            logger.error(f"Failed to update table {table_id}: {e}")  # pragma: no cover
            return None

    def _parse_list(self, data: Any, model: type[Order] | type[Table], label: str) -> list[Any] | None:
        if not isinstance(data, list):
            logger.error(f"Expected a list of {label}s, got {type(data).__name__}")  # pragma: no cover
            return None

        records = []
        for raw in data:
            try:
                records.append(model.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping malformed {label} record: {e}")
        return records
