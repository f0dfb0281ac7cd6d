"""Translate Asana event batches into canonical events."""

from datetime import UTC, datetime

from connectors.base.canonical_event import (
    CanonicalEvent,
    EntityReference,
    EventCategory,
    PayloadError,
    WebhookDelivery,
)
from connectors.base.utils import parse_provider_timestamp


def asana_event_external_id(event: dict) -> str:
    """Asana events carry no id of their own; derive one from what makes them distinct."""
    resource = event.get("resource") or {}
    change = event.get("change") or {}
    return ":".join(
        [
            str(resource.get("gid", "")),
            str(event.get("action", "")),
            str(event.get("created_at", "")),
            str(change.get("field", "")),
        ]
    )


def normalize_asana_webhook(delivery: WebhookDelivery) -> list[CanonicalEvent]:
    """One canonical event per entry of events[]; an empty batch yields nothing."""
    payload = delivery.payload
    if not isinstance(payload, dict):
        raise PayloadError("Asana payload must be a JSON object")

    events = payload.get("events") or []
    if not isinstance(events, list):
        raise PayloadError("Asana events must be a list")

    canonical_events = []
    for event in events:
        if not isinstance(event, dict):
            raise PayloadError("Asana event must be a JSON object")
        resource = event.get("resource")
        if not isinstance(resource, dict) or not resource.get("gid") or not event.get("action"):
            raise PayloadError("Asana event is missing resource.gid or action")

        resource_type = resource.get("resource_type") or "unknown"
        canonical_events.append(
            CanonicalEvent(
                external_id=asana_event_external_id(event),
                source_tool="asana",
                type=f"{resource_type}.{event['action']}",
                category=EventCategory.TASK,
                occurred_at=parse_provider_timestamp(
                    event.get("created_at"), default=datetime.now(UTC)
                ),
                # Each stored row replays on its own, so keep only its entry
                raw_data=event,
                entity=EntityReference(entity_type=resource_type, external_id=str(resource["gid"])),
            )
        )
    return canonical_events
