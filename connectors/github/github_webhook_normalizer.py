"""Translate GitHub repository webhooks into canonical events."""

from datetime import UTC, datetime

from connectors.base.canonical_event import (
    CanonicalEvent,
    EntityReference,
    EventCategory,
    PayloadError,
    WebhookDelivery,
)
from connectors.base.utils import parse_provider_timestamp

# Where each event family keeps the timestamp of the change it reports
_OCCURRED_AT_PATHS: dict[str, tuple[str, ...]] = {
    "push": ("head_commit", "timestamp"),
    "pull_request": ("pull_request", "updated_at"),
    "pull_request_review": ("review", "submitted_at"),
    "issues": ("issue", "updated_at"),
    "deployment": ("deployment", "updated_at"),
    "deployment_status": ("deployment_status", "updated_at"),
    "status": ("updated_at",),
    "repository": ("repository", "updated_at"),
}


def extract_github_repository_id(payload: dict) -> str | None:
    """GitHub's numeric repository id, as a string, or None for repository-less events."""
    repository = payload.get("repository")
    if not isinstance(repository, dict) or repository.get("id") is None:
        return None
    return str(repository["id"])


def _occurred_at(event_name: str, payload: dict) -> datetime:
    value = payload
    for key in _OCCURRED_AT_PATHS.get(event_name, ()):
        value = value.get(key) if isinstance(value, dict) else None
    if value is payload:
        value = None
    return parse_provider_timestamp(value, default=datetime.now(UTC))


def normalize_github_webhook(delivery: WebhookDelivery) -> list[CanonicalEvent]:
    """One canonical event per GitHub delivery.

    The delivery GUID is the idempotency key; GitHub reuses it on manual redelivery.
    """
    event_name = delivery.headers.get("x-github-event")
    if not event_name:
        raise PayloadError("Missing X-GitHub-Event header")

    payload = delivery.payload
    if not isinstance(payload, dict):
        raise PayloadError("GitHub payload must be a JSON object")

    action = payload.get("action")
    event_type = f"{event_name}.{action}" if isinstance(action, str) and action else event_name
    repository_id = extract_github_repository_id(payload)

    return [
        CanonicalEvent(
            external_id=delivery.headers.get("x-github-delivery") or delivery.body_digest,
            source_tool="github",
            type=event_type,
            category=EventCategory.CODE,
            occurred_at=_occurred_at(event_name, payload),
            raw_data=payload,
            entity=EntityReference(entity_type="repository", external_id=repository_id)
            if repository_id
            else None,
        )
    ]
