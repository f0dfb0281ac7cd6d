from datetime import UTC, datetime

from connectors.base.canonical_event import (
    CanonicalEvent,
    EntityReference,
    EventCategory,
    PayloadError,
    WebhookDelivery,
)
from connectors.base.utils import parse_provider_timestamp


def normalize_trello_webhook(delivery: WebhookDelivery) -> list[CanonicalEvent]:
    """Trello posts one action per delivery; the action id is its idempotency key."""
    payload = delivery.payload
    if not isinstance(payload, dict):
        raise PayloadError("Trello payload must be a JSON object")

    action = payload.get("action")
    if not isinstance(action, dict) or not action.get("id"):
        raise PayloadError("Trello payload is missing action.id")

    card = (action.get("data") or {}).get("card") or {}
    model = payload.get("model") or {}
    entity = None
    if card.get("id"):
        entity = EntityReference(entity_type="card", external_id=str(card["id"]))
    elif model.get("id"):
        entity = EntityReference(entity_type="board", external_id=str(model["id"]))

    return [
        CanonicalEvent(
            external_id=str(action["id"]),
            source_tool="trello",
            type=action.get("type") or "unknown",
            category=EventCategory.TASK,
            occurred_at=parse_provider_timestamp(action.get("date"), default=datetime.now(UTC)),
            raw_data=payload,
            entity=entity,
        )
    ]
