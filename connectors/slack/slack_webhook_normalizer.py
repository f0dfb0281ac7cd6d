"""Translate Slack Events API callbacks into canonical events."""

import re
from datetime import UTC, datetime

from connectors.base.canonical_event import (
    CanonicalEvent,
    EntityReference,
    EventCategory,
    PayloadError,
    WebhookDelivery,
)
from connectors.base.utils import parse_provider_timestamp

# <@U123ABC> or <@U123ABC|display-name>
_MENTION_PATTERN = re.compile(r"<@([A-Z0-9]+)(?:\|[^>]*)?>")


def parse_slack_mentions(text: str | None) -> list[str]:
    """User ids mentioned in a message, in order of first appearance."""
    if not text:
        return []
    return list(dict.fromkeys(_MENTION_PATTERN.findall(text)))


def slack_channel_id(inner_event: dict) -> str | None:
    """Channel id for message events (string) and channel events (object with id)."""
    channel = inner_event.get("channel")
    if isinstance(channel, dict):
        channel = channel.get("id")
    return channel if isinstance(channel, str) and channel else None


def slack_event_type(inner_event: dict) -> str:
    event_type = inner_event.get("type") or "unknown"
    subtype = inner_event.get("subtype")
    return f"{event_type}.{subtype}" if subtype else event_type


def normalize_slack_webhook(delivery: WebhookDelivery) -> list[CanonicalEvent]:
    """Normalize an event_callback envelope.

    url_verification never reaches here; other envelope types carry no event and
    produce nothing.
    """
    payload = delivery.payload
    if not isinstance(payload, dict):
        raise PayloadError("Slack payload must be a JSON object")
    if payload.get("type") != "event_callback":
        return []

    event_id = payload.get("event_id")
    inner_event = payload.get("event")
    if not event_id or not isinstance(inner_event, dict):
        raise PayloadError("Slack event_callback is missing event_id or event")

    channel_id = slack_channel_id(inner_event)
    message = inner_event.get("message") if isinstance(inner_event.get("message"), dict) else {}
    text = inner_event.get("text") or message.get("text")

    return [
        CanonicalEvent(
            external_id=event_id,
            source_tool="slack",
            type=slack_event_type(inner_event),
            category=EventCategory.COMMUNICATION,
            occurred_at=parse_provider_timestamp(
                payload.get("event_time"), default=datetime.now(UTC)
            ),
            raw_data=payload,
            entity=EntityReference(entity_type="channel", external_id=channel_id)
            if channel_id
            else None,
            metadata={"team_id": payload.get("team_id"), "mentions": parse_slack_mentions(text)},
        )
    ]
