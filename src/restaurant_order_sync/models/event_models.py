"""Push event models and identifier normalization.

Push payloads from the order service identify orders and tables in several
equivalent shapes. Every shape is resolved to one canonical string here, at the
boundary, before anything compares or merges identities.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

# Keys that carry an identifier inside an embedded object
EMBEDDED_ID_KEYS = ("_id", "id", "$oid")


class IdShape(str, Enum):
    """Known shapes an identifier can take in a push payload."""

    BARE = "bare"  # "66f1c0..." or 42
    EMBEDDED = "embedded"  # {"_id": "..."}, {"id": "..."}, {"$oid": "..."}
    NESTED = "nested"  # {"orderId": "..."} or {"order": {"_id": "..."}}


@dataclass(frozen=True)
class IdReference:
    """An identifier resolved from a payload, tagged with the shape it came in.

    Attributes:
        shape: The outermost shape the identifier was found in
        value: Canonical identifier string
    """

    shape: IdShape
    value: str


def resolve_id(raw: Any, entity: str | None = None) -> IdReference | None:
    """Resolve any supported identifier shape to an IdReference.

    Args:
        raw: Bare identifier, embedded object, or payload with a nested reference
        entity: Entity name ("order", "table") enabling nested lookups such as
            ``orderId`` and ``order``

    Returns:
        IdReference, or None if no identifier could be found
    """
    if isinstance(raw, bool):
        return None

    if isinstance(raw, str):
        value = raw.strip()
        return IdReference(IdShape.BARE, value) if value else None

    if isinstance(raw, int):
        return IdReference(IdShape.BARE, str(raw))

    if not isinstance(raw, dict):
        return None

    for key in EMBEDDED_ID_KEYS:
        if key in raw:
            inner = resolve_id(raw[key])
            if inner is not None:
                return IdReference(IdShape.EMBEDDED, inner.value)

    if entity is not None:
        for key in (f"{entity}Id", f"{entity}_id", entity):
            if key in raw:
                inner = resolve_id(raw[key], entity)
                if inner is not None:
                    return IdReference(IdShape.NESTED, inner.value)

    return None


def normalize_id(raw: Any, entity: str | None = None) -> str | None:
    """Normalize an identifier in any supported shape to its canonical string.

    This is the only function used to derive identities for comparison.

    Args:
        raw: Identifier in any supported shape
        entity: Optional entity name enabling nested reference lookups

    Returns:
        Canonical identifier string, or None if unrecognized
    """
    reference = resolve_id(raw, entity)
    return reference.value if reference is not None else None


class PushEventType(str, Enum):
    """Push notification kinds delivered by the order service."""

    ORDER_CREATED = "orderCreated"
    ORDER_UPDATED = "orderUpdated"
    ORDER_DELETED = "orderDeleted"
    TABLE_UPDATED = "tableUpdated"

    @property
    def entity(self) -> str:
        """Entity name the event refers to."""
        return "table" if self is PushEventType.TABLE_UPDATED else "order"


class PushEnvelope(BaseModel):
    """Outer envelope of a push message: ``{"event": ..., "data": ...}``."""

    event: PushEventType = Field(..., validation_alias=AliasChoices("event", "type"))
    data: Any = None


@dataclass(frozen=True)
class PushEvent:
    """A parsed push event with its identity already normalized.

    Attributes:
        event_type: Kind of event
        entity_id: Canonical identifier of the order or table
        body: Record fields carried by the event (empty for deletions)
    """

    event_type: PushEventType
    entity_id: str
    body: dict[str, Any]


def _unwrap_body(data: Any, entity: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        return {}
    nested = data.get(entity)
    if isinstance(nested, dict):
        return nested
    for key in ("changes", "updates"):
        inner = data.get(key)
        if isinstance(inner, dict):
            return inner
    return {
        key: value
        for key, value in data.items()
        if key not in EMBEDDED_ID_KEYS and key not in (f"{entity}Id", f"{entity}_id")
    }


def parse_push_message(message: Any) -> PushEvent | None:
    """Parse a raw push message into a PushEvent.

    Accepts bytes, a JSON string, or an already-decoded dict.

    Args:
        message: Raw message from the push channel

    Returns:
        PushEvent if parsing succeeds, None for malformed or unrecognized payloads
    """
    try:
        if isinstance(message, bytes | bytearray):
            message = message.decode("utf-8")
        if isinstance(message, str):
            message = json.loads(message)
        envelope = PushEnvelope.model_validate(message)
    except (ValidationError, ValueError, TypeError) as e:
        logger.warning(f"Dropping unparseable push message: {e}")
        return None

    entity = envelope.event.entity
    entity_id = normalize_id(envelope.data, entity)
    if entity_id is None:
        logger.warning(f"Dropping {envelope.event.value} push without a recognizable id")
        return None

    body: dict[str, Any] = {}
    if envelope.event is not PushEventType.ORDER_DELETED:
        body = _unwrap_body(envelope.data, entity)
        if not body:
            logger.warning(f"Dropping {envelope.event.value} push for {entity_id} with no fields")
            return None

    return PushEvent(event_type=envelope.event, entity_id=entity_id, body=body)
