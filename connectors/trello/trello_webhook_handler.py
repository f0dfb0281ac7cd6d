"""
Trello webhook verification utilities.

Trello signs base64(HMAC-SHA1(secret, body + callback_url)), so the verifier must
know the exact callback URL the webhook was registered with.
"""

import base64
import hashlib
import hmac
import json
import logging

from src.database.integrations import Integration
from src.ingest.gatekeeper.verification import VerificationResult
from src.utils.config import get_public_base_url
from src.utils.size_formatting import payload_size_fields

logger = logging.getLogger(__name__)


class TrelloWebhookVerifier:
    """Verifier for Trello webhooks using HMAC-SHA1 signatures.

    Note: Does not inherit from BaseSigningSecretVerifier because Trello's
    signature covers the callback URL as well as the body.
    """

    source_type = "trello"
    failure_status_code = 401

    def verify(
        self,
        headers: dict[str, str],
        body: bytes,
        integration: Integration | None = None,
        request_url: str | None = None,
        query_params: dict[str, str] | None = None,
    ) -> VerificationResult:
        del query_params  # unused for Trello
        signing_secret = integration.webhook_secret if integration is not None else None
        if not signing_secret:
            return VerificationResult(
                success=False,
                error=f"No signing secret configured for {self.source_type} webhooks",
            )
        if not request_url:
            return VerificationResult(success=False, error="Trello callback URL is required")

        try:
            verify_trello_webhook(headers, body, request_url, signing_secret)
            return VerificationResult(success=True)
        except ValueError as e:
            return VerificationResult(success=False, error=str(e))


def get_trello_webhook_callback_url(organization_id: str) -> str:
    """The callback URL Trello webhooks are registered with for an organization.

    Used both when registering webhooks with Trello and when verifying signatures,
    so it must not depend on how the request reached us (proxies rewrite hosts).
    """
    return f"{get_public_base_url()}/webhooks/trello/{organization_id}"


def verify_trello_webhook(
    headers: dict[str, str], body: bytes, callback_url: str, secret: str
) -> None:
    """Verify Trello webhook signature.

    Raises:
        ValueError: If signature verification fails
    """
    if not secret:
        raise ValueError("Trello webhook secret is not configured")

    signature = headers.get("x-trello-webhook", "")
    if not signature:
        raise ValueError("Missing Trello webhook signature header")

    # See: https://developer.atlassian.com/cloud/trello/guides/rest-api/webhooks/
    content = body + callback_url.encode("utf-8")
    expected_bytes = hmac.new(secret.encode("utf-8"), content, hashlib.sha1).digest()
    expected_signature = base64.b64encode(expected_bytes).decode()

    if not hmac.compare_digest(signature, expected_signature):
        raise ValueError("Invalid Trello webhook signature")


def extract_trello_webhook_metadata(
    headers: dict[str, str], body_str: str
) -> dict[str, str | int | bool]:
    """Extract metadata from Trello webhook for observability.

    Safely extracts key information without failing webhook processing.
    """
    metadata: dict[str, str | int | bool] = dict(payload_size_fields(body_str))

    if signature := headers.get("x-trello-webhook"):
        # Only log first 8 chars of signature for debugging
        metadata["signature_preview"] = signature[:8] + "..."

    try:
        try:
            payload = json.loads(body_str)
        except (json.JSONDecodeError, ValueError):
            metadata["parse_error"] = "Failed to parse JSON"
            return metadata

        action = payload.get("action", {})
        metadata["action_type"] = action.get("type", "unknown")
        if action.get("id"):
            metadata["action_id"] = action["id"]

        model = payload.get("model", {})
        if "id" in model:
            metadata["model_id"] = model["id"]

        action_data = action.get("data", {})

        card = action_data.get("card", {})
        if card and "id" in card:
            metadata["card_id"] = card["id"]

        board = action_data.get("board", {})
        if board and "id" in board:
            metadata["board_id"] = board["id"]

        list_data = action_data.get("list", {})
        if list_data and "id" in list_data:
            metadata["list_id"] = list_data["id"]

    except Exception as e:
        # Log but don't fail
        logger.error(f"Error extracting Trello webhook metadata: {e}")
        metadata["extraction_error"] = str(e)

    return metadata
