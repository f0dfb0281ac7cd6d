"""
PostHog webhook authentication.

PostHog does not sign webhook deliveries. An integration may store a shared token
that the destination URL carries as ?token=...; when it does, deliveries without
the matching token are rejected.
"""

import hmac
import json
import logging

from src.database.integrations import Integration
from src.ingest.gatekeeper.verification import VerificationResult
from src.utils.size_formatting import payload_size_fields

logger = logging.getLogger(__name__)


class PostHogWebhookVerifier:
    """Verifier for PostHog webhooks using an optional URL token."""

    source_type = "posthog"
    failure_status_code = 401

    def verify(
        self,
        headers: dict[str, str],
        body: bytes,
        integration: Integration | None = None,
        request_url: str | None = None,
        query_params: dict[str, str] | None = None,
    ) -> VerificationResult:
        del headers, body, request_url  # token lives in the query string
        expected = integration.webhook_secret if integration is not None else None
        try:
            verify_posthog_webhook(query_params or {}, expected)
            return VerificationResult(success=True)
        except ValueError as e:
            return VerificationResult(success=False, error=str(e))


def verify_posthog_webhook(query_params: dict[str, str], expected_token: str | None) -> None:
    """Check the ?token= parameter when the integration has one configured."""
    if not expected_token:
        return

    token = query_params.get("token", "")
    if not token:
        raise ValueError("Missing PostHog webhook token")

    if not hmac.compare_digest(token.encode("utf-8"), expected_token.encode("utf-8")):
        raise ValueError("PostHog webhook token verification failed")


def extract_posthog_webhook_metadata(
    headers: dict[str, str], body_str: str
) -> dict[str, str | int | bool]:
    """Extract metadata from PostHog webhook for observability.

    distinct_id and person properties are left out; they identify end users.
    """
    metadata: dict[str, str | int | bool] = dict(payload_size_fields(body_str))

    try:
        try:
            payload = json.loads(body_str)
        except (json.JSONDecodeError, ValueError):
            metadata["parse_error"] = "Failed to parse JSON"
            return metadata

        if isinstance(payload.get("data"), dict):
            metadata["envelope"] = True
            if isinstance(hook := payload.get("hook"), dict) and hook.get("id"):
                metadata["hook_id"] = str(hook["id"])
            payload = payload["data"]

        metadata["event"] = payload.get("event", "unknown")
        metadata["uuid"] = payload.get("uuid", "")

    except Exception as e:
        logger.error(f"Error extracting PostHog webhook metadata: {e}")
        metadata["extraction_error"] = str(e)

    return metadata
