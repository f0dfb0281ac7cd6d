import hashlib
import hmac
import json
import logging

from src.ingest.gatekeeper.verification import EnvironmentSecretVerifier
from src.utils.config import get_github_webhook_secret
from src.utils.size_formatting import payload_size_fields

logger = logging.getLogger(__name__)


class GitHubWebhookVerifier(EnvironmentSecretVerifier):
    """Verifier for GitHub webhooks using HMAC-SHA256 signatures."""

    source_type = "github"
    secret_getter = staticmethod(lambda: get_github_webhook_secret())
    verify_func = staticmethod(lambda h, b, s: verify_github_webhook(h, b, s))


def verify_github_webhook(headers: dict[str, str], body: bytes, secret: str) -> None:
    """Verify GitHub webhook signature."""
    if not secret:
        raise ValueError("GitHub webhook secret is not configured")

    signature = headers.get("x-hub-signature-256", "")
    if not signature:
        raise ValueError("Missing X-Hub-Signature-256 header")

    if not signature.startswith("sha256="):
        raise ValueError("Invalid signature format - expected sha256= prefix")

    expected = "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()

    if not hmac.compare_digest(signature, expected):
        raise ValueError("GitHub webhook signature verification failed")


def extract_github_webhook_metadata(
    headers: dict[str, str], body_str: str
) -> dict[str, str | int | bool]:
    """Extract metadata from GitHub webhook for observability.

    Excludes names of all kinds to avoid logging PII.
    """
    metadata: dict[str, str | int | bool] = dict(payload_size_fields(body_str))

    try:
        metadata["hook_id"] = headers.get("x-github-hook-id", "")
        metadata["event_type"] = headers.get("x-github-event", "unknown")
        metadata["delivery_id"] = headers.get("x-github-delivery", "")

        try:
            payload = json.loads(body_str)
        except (json.JSONDecodeError, ValueError):
            metadata["parse_error"] = "Failed to parse JSON"
            return metadata

        metadata["action"] = payload.get("action", "")

        if repository := payload.get("repository"):
            metadata["repository_id"] = repository.get("id", "")

        if sender := payload.get("sender"):
            metadata["sender_id"] = sender.get("id", "")
            metadata["sender_type"] = sender.get("type", "")

        if commits := payload.get("commits"):
            metadata["commit_count"] = len(commits)

    except Exception as e:
        logger.error(f"Error extracting GitHub webhook metadata: {e}")
        metadata["extraction_error"] = str(e)

    return metadata
