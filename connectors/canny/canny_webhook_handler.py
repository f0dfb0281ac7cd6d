import base64
import hashlib
import hmac
import json
import logging

from src.database.integrations import Integration
from src.ingest.gatekeeper.verification import IntegrationSecretVerifier
from src.utils.size_formatting import payload_size_fields

logger = logging.getLogger(__name__)


class CannyWebhookVerifier(IntegrationSecretVerifier):
    """Verifier for Canny webhooks, signed with the organization's Canny API key."""

    source_type = "canny"
    verify_func = staticmethod(lambda h, b, s: verify_canny_webhook(h, b, s))

    def get_signing_secret(self, integration: Integration | None) -> str | None:
        if integration is None:
            return None
        return integration.api_key


def verify_canny_webhook(headers: dict[str, str], body: bytes, secret: str) -> None:
    """Verify Canny webhook signature (base64 HMAC-SHA256 of the canny-nonce header)."""
    if not secret:
        raise ValueError("Canny API key is not configured")

    nonce = headers.get("canny-nonce", "")
    signature = headers.get("canny-signature", "")
    if not nonce or not signature:
        raise ValueError("Missing Canny-Nonce or Canny-Signature header")

    digest = hmac.new(secret.encode("utf-8"), nonce.encode("utf-8"), hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("ascii")

    if not hmac.compare_digest(signature, expected):
        raise ValueError("Canny webhook signature verification failed")


def extract_canny_webhook_metadata(
    headers: dict[str, str], body_str: str
) -> dict[str, str | int | bool]:
    """Extract metadata from Canny webhook for observability."""
    metadata: dict[str, str | int | bool] = dict(payload_size_fields(body_str))

    try:
        try:
            payload = json.loads(body_str)
        except (json.JSONDecodeError, ValueError):
            metadata["parse_error"] = "Failed to parse JSON"
            return metadata

        if event_type := payload.get("type"):
            metadata["event_type"] = str(event_type)
        if object_type := payload.get("objectType"):
            metadata["object_type"] = str(object_type)

    except Exception as e:
        logger.error(f"Error extracting Canny webhook metadata: {e}")
        metadata["extraction_error"] = str(e)

    return metadata
