import hashlib
import hmac
import json
import logging

from src.ingest.gatekeeper.verification import IntegrationSecretVerifier
from src.utils.size_formatting import payload_size_fields

logger = logging.getLogger(__name__)


class AsanaWebhookVerifier(IntegrationSecretVerifier):
    """Verifier for Asana webhooks using the secret exchanged during the handshake."""

    source_type = "asana"
    verify_func = staticmethod(lambda h, b, s: verify_asana_webhook(h, b, s))


def verify_asana_webhook(headers: dict[str, str], body: bytes, secret: str) -> None:
    """Verify Asana webhook signature (hex HMAC-SHA256 of the body)."""
    if not secret:
        raise ValueError("Asana webhook secret is not configured")

    signature = headers.get("x-hook-signature", "")
    if not signature:
        raise ValueError("Missing X-Hook-Signature header")

    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()

    if not hmac.compare_digest(signature, expected):
        raise ValueError("Asana webhook signature verification failed")


def extract_asana_webhook_metadata(
    headers: dict[str, str], body_str: str
) -> dict[str, str | int | bool]:
    """Extract metadata from Asana webhook for observability."""
    metadata: dict[str, str | int | bool] = dict(payload_size_fields(body_str))

    try:
        if headers.get("x-hook-secret"):
            metadata["handshake"] = True
            return metadata

        try:
            payload = json.loads(body_str)
        except (json.JSONDecodeError, ValueError):
            metadata["parse_error"] = "Failed to parse JSON"
            return metadata

        events = payload.get("events") or []
        metadata["event_count"] = len(events)
        resource_types = sorted(
            {
                str((event.get("resource") or {}).get("resource_type", "unknown"))
                for event in events
                if isinstance(event, dict)
            }
        )
        if resource_types:
            metadata["resource_types"] = ",".join(resource_types)

    except Exception as e:
        logger.error(f"Error extracting Asana webhook metadata: {e}")
        metadata["extraction_error"] = str(e)

    return metadata
