"""Translate Canny post, comment and vote webhooks into canonical events."""

import hashlib
from datetime import UTC, datetime

from connectors.base.canonical_event import (
    CanonicalEvent,
    EntityReference,
    EventCategory,
    PayloadError,
    WebhookDelivery,
)
from connectors.base.utils import parse_provider_timestamp


def canny_board_id(obj: dict) -> str | None:
    """Posts carry their board; comments and votes carry it on their post."""
    board = obj.get("board") or (obj.get("post") or {}).get("board") or {}
    board_id = board.get("id")
    return str(board_id) if board_id else None


def canny_event_external_id(payload: dict) -> str:
    """Canny sends no event id; type, object id and created time identify a delivery."""
    obj = payload.get("object") or {}
    key = f"{payload.get('type', '')}:{obj.get('id', '')}:{payload.get('created', '')}"
    return hashlib.sha256(key.encode()).hexdigest()


def normalize_canny_webhook(delivery: WebhookDelivery) -> list[CanonicalEvent]:
    payload = delivery.payload
    if not isinstance(payload, dict):
        raise PayloadError("Canny payload must be a JSON object")

    event_type = payload.get("type")
    obj = payload.get("object")
    if not event_type or not isinstance(obj, dict):
        raise PayloadError("Canny payload is missing type or object")

    board_id = canny_board_id(obj)
    if board_id is None:
        raise PayloadError("Missing board id in Canny payload")

    object_type = payload.get("objectType") or str(event_type).split(".", 1)[0]
    entity = (
        EntityReference(entity_type=str(object_type), external_id=str(obj["id"]))
        if obj.get("id")
        else None
    )
    return [
        CanonicalEvent(
            external_id=canny_event_external_id(payload),
            source_tool="canny",
            type=str(event_type),
            category=EventCategory.FEEDBACK,
            occurred_at=parse_provider_timestamp(payload.get("created"), default=datetime.now(UTC)),
            raw_data=payload,
            entity=entity,
            metadata={"board_id": board_id},
        )
    ]
