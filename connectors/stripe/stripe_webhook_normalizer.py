"""Translate Stripe Event objects into canonical events."""

from datetime import UTC, datetime

from connectors.base.canonical_event import (
    CanonicalEvent,
    EntityReference,
    EventCategory,
    PayloadError,
    WebhookDelivery,
)
from connectors.base.utils import parse_provider_timestamp

# Checked longest prefix first so customer.subscription.* is not filed under customer
_CATEGORY_PREFIXES: dict[str, EventCategory] = {
    "customer.subscription.": EventCategory.SUBSCRIPTION,
    "customer.": EventCategory.CUSTOMER,
    "invoice.": EventCategory.INVOICE,
    "charge.": EventCategory.CHARGE,
    "payment_intent.": EventCategory.PAYMENT,
    "balance.": EventCategory.BALANCE,
}


def determine_event_category(event_type: str) -> EventCategory:
    for prefix in sorted(_CATEGORY_PREFIXES, key=len, reverse=True):
        if event_type.startswith(prefix):
            return _CATEGORY_PREFIXES[prefix]
    return EventCategory.OTHER


def normalize_stripe_webhook(delivery: WebhookDelivery) -> list[CanonicalEvent]:
    payload = delivery.payload
    if not isinstance(payload, dict):
        raise PayloadError("Stripe payload must be a JSON object")

    event_id = payload.get("id")
    event_type = payload.get("type")
    if not event_id or not event_type:
        raise PayloadError("Stripe event is missing id or type")

    data_object = (payload.get("data") or {}).get("object") or {}
    entity = None
    if isinstance(data_object, dict) and data_object.get("id") and data_object.get("object"):
        entity = EntityReference(
            entity_type=str(data_object["object"]), external_id=str(data_object["id"])
        )

    return [
        CanonicalEvent(
            external_id=event_id,
            source_tool="stripe",
            type=event_type,
            category=determine_event_category(event_type),
            occurred_at=parse_provider_timestamp(payload.get("created"), default=datetime.now(UTC)),
            raw_data=payload,
            entity=entity,
            metadata={"livemode": bool(payload.get("livemode", False))},
        )
    ]
