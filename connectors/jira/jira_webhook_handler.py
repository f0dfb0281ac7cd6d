import hashlib
import hmac
import json

from src.ingest.gatekeeper.verification import IntegrationSecretVerifier
from src.utils.logging import get_logger
from src.utils.size_formatting import payload_size_fields

logger = get_logger(__name__)


class JiraWebhookVerifier(IntegrationSecretVerifier):
    """Verifier for Jira webhooks registered with a secret (X-Hub-Signature)."""

    source_type = "jira"
    verify_func = staticmethod(lambda h, b, s: verify_jira_webhook(h, b, s))


def verify_jira_webhook(headers: dict[str, str], body: bytes, secret: str) -> None:
    """Verify Jira webhook signature ("sha256=" + hex HMAC-SHA256 of the body)."""
    if not secret:
        raise ValueError("Jira webhook secret is not configured")

    signature = headers.get("x-hub-signature", "")
    if not signature:
        raise ValueError("Missing X-Hub-Signature header")

    method, _, digest = signature.partition("=")
    if method != "sha256" or not digest:
        raise ValueError("Unsupported Jira signature format")

    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()

    if not hmac.compare_digest(digest, expected):
        raise ValueError("Jira webhook signature verification failed")


def extract_jira_webhook_metadata(
    headers: dict[str, str], body_str: str
) -> dict[str, str | int | bool]:
    """Extract metadata from Jira webhook for observability."""
    metadata: dict[str, str | int | bool] = dict(payload_size_fields(body_str))

    try:
        if webhook_identifier := headers.get("x-atlassian-webhook-identifier"):
            metadata["webhook_identifier"] = webhook_identifier

        try:
            payload = json.loads(body_str)
        except (json.JSONDecodeError, ValueError):
            metadata["parse_error"] = "Failed to parse JSON"
            return metadata

        if webhook_event := payload.get("webhookEvent"):
            metadata["webhook_event"] = str(webhook_event)

        issue = payload.get("issue") or {}
        if issue.get("key"):
            metadata["issue_key"] = str(issue["key"])
        project = (issue.get("fields") or {}).get("project") or {}
        if project.get("id"):
            metadata["project_id"] = str(project["id"])

        if comment := payload.get("comment"):
            metadata["comment_id"] = str(comment.get("id", ""))

        if changelog := payload.get("changelog"):
            items = changelog.get("items", [])
            metadata["changelog_items_count"] = len(items)
            changed_fields = [item.get("field", "") for item in items]
            if any(changed_fields):
                metadata["changed_fields"] = ",".join(filter(None, changed_fields))

    except Exception as e:
        logger.error(f"Error extracting Jira webhook metadata: {e}")
        metadata["extraction_error"] = str(e)

    return metadata
