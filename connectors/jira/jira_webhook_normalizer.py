"""Translate Jira issue and comment webhooks into canonical events."""

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


def jira_issue_project_id(payload: dict) -> str | None:
    project = ((payload.get("issue") or {}).get("fields") or {}).get("project") or {}
    project_id = project.get("id")
    return str(project_id) if project_id else None


def jira_event_external_id(headers: dict[str, str], payload: dict) -> str:
    """Jira repeats the webhook identifier on retries; fall back to the event's own fields."""
    if identifier := headers.get("x-atlassian-webhook-identifier"):
        return identifier
    issue = payload.get("issue") or {}
    comment = payload.get("comment") or {}
    key = ":".join(
        [
            str(payload.get("webhookEvent", "")),
            str(issue.get("id", "")),
            str(comment.get("id", "")),
            str(payload.get("timestamp", "")),
        ]
    )
    return hashlib.sha256(key.encode()).hexdigest()


def _occurred_at(payload: dict) -> datetime:
    timestamp = payload.get("timestamp")
    # Jira sends epoch milliseconds
    if isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool):
        timestamp = timestamp / 1000
    return parse_provider_timestamp(timestamp, default=datetime.now(UTC))


def normalize_jira_webhook(delivery: WebhookDelivery) -> list[CanonicalEvent]:
    payload = delivery.payload
    if not isinstance(payload, dict):
        raise PayloadError("Jira payload must be a JSON object")

    webhook_event = payload.get("webhookEvent")
    if not webhook_event:
        raise PayloadError("Missing webhookEvent in Jira payload")

    issue = payload.get("issue")
    if not isinstance(issue, dict) or not issue.get("id"):
        raise PayloadError("Missing issue in Jira payload")

    project_id = jira_issue_project_id(payload)
    if project_id is None:
        raise PayloadError("Missing project id in Jira payload")

    return [
        CanonicalEvent(
            external_id=jira_event_external_id(delivery.headers, payload),
            source_tool="jira",
            type=str(webhook_event),
            category=EventCategory.TASK,
            occurred_at=_occurred_at(payload),
            raw_data=payload,
            entity=EntityReference(entity_type="issue", external_id=str(issue["id"])),
            metadata={"project_id": project_id, "issue_key": issue.get("key")},
        )
    ]
