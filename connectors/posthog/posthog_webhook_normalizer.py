"""Translate PostHog webhook deliveries into canonical analytics events.

PostHog sends either the bare event or, from the newer destinations, an envelope
of the form {"hook": {...}, "data": {...event...}}.
"""

from datetime import UTC, datetime
from typing import Any

from connectors.base.canonical_event import (
    CanonicalEvent,
    EventCategory,
    PayloadError,
    WebhookDelivery,
)
from connectors.base.utils import parse_provider_timestamp


def unwrap_posthog_payload(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise PayloadError("PostHog payload must be a JSON object")
    data = payload.get("data")
    if isinstance(data, dict) and "event" in data:
        return data
    return payload


def _first(properties: dict, *keys: str) -> Any:
    for key in keys:
        value = properties.get(key)
        if value not in (None, ""):
            return value
    return None


def _duration(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def posthog_event_fields(event: dict) -> dict[str, Any]:
    """Top-level analytics columns derived from the event's $-properties."""
    properties = event.get("properties") or {}
    language = properties.get("$browser_language")
    return {
        "referrer": _first(properties, "$referrer", "$initial_referrer"),
        "referring_domain": _first(properties, "$referring_domain", "$initial_referring_domain"),
        "timezone": properties.get("$timezone"),
        "pathname": _first(properties, "$pathname", "$current_url"),
        "device_type": properties.get("$device_type"),
        "browser_language_prefix": language.split("-")[0] if isinstance(language, str) else None,
        "geoip_city_name": properties.get("$geoip_city_name"),
        "geoip_country_name": properties.get("$geoip_country_name"),
        "geoip_country_code": properties.get("$geoip_country_code"),
        "geoip_continent_name": properties.get("$geoip_continent_name"),
        "geoip_continent_code": properties.get("$geoip_continent_code"),
        "duration": _duration(properties.get("$prev_pageview_duration")),
    }


def posthog_event_attributes(event: dict) -> dict[str, Any]:
    properties = event.get("properties") or {}
    viewport = None
    if properties.get("$viewport_width") and properties.get("$viewport_height"):
        viewport = f"{properties['$viewport_width']}x{properties['$viewport_height']}"

    attributes = {
        "distinctId": event.get("distinct_id"),
        "browser": properties.get("$browser"),
        "browserVersion": properties.get("$browser_version"),
        "os": properties.get("$os"),
        "osVersion": properties.get("$os_version"),
        "screenHeight": properties.get("$screen_height"),
        "screenWidth": properties.get("$screen_width"),
        "viewport": viewport,
        "lib": properties.get("$lib"),
        "libVersion": properties.get("$lib_version"),
        "insertId": properties.get("$insert_id"),
        "sessionId": properties.get("$session_id"),
        "host": properties.get("$host"),
        "userProperties": event.get("$set"),
        "userPropertiesOnce": event.get("$set_once"),
        "customProperties": {k: v for k, v in properties.items() if not k.startswith("$")},
    }
    return {k: v for k, v in attributes.items() if v is not None}


def normalize_posthog_webhook(delivery: WebhookDelivery) -> list[CanonicalEvent]:
    event = unwrap_posthog_payload(delivery.payload)
    event_name = event.get("event")
    if not event_name:
        raise PayloadError("PostHog event is missing its event name")

    return [
        CanonicalEvent(
            external_id=str(event.get("uuid") or delivery.body_digest),
            source_tool="posthog",
            type=event_name,
            category=EventCategory.ANALYTICS,
            occurred_at=parse_provider_timestamp(event.get("timestamp"), default=datetime.now(UTC)),
            raw_data=event,
        )
    ]
