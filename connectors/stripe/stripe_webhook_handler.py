import json
import logging

import stripe

from src.ingest.gatekeeper.verification import IntegrationSecretVerifier
from src.utils.size_formatting import payload_size_fields

logger = logging.getLogger(__name__)


class StripeWebhookVerifier(IntegrationSecretVerifier):
    """Verifier for Stripe webhooks signed with the integration's endpoint secret."""

    source_type = "stripe"
    # Stripe treats every verification failure as a bad request
    failure_status_code = 400
    verify_func = staticmethod(lambda h, b, s: verify_stripe_webhook(h, b, s))


def verify_stripe_webhook(headers: dict[str, str], body: bytes, secret: str) -> None:
    """Verify the Stripe-Signature header over the exact request bytes."""
    if not secret:
        raise ValueError("Stripe webhook secret is not configured")

    signature = headers.get("stripe-signature")
    if not signature:
        raise ValueError("Missing Stripe-Signature header")

    try:
        stripe.Webhook.construct_event(body, signature, secret)
    except stripe.SignatureVerificationError as e:
        raise ValueError(f"Stripe webhook signature verification failed: {e}") from e
    except ValueError as e:
        raise ValueError(f"Invalid Stripe webhook payload: {e}") from e


def extract_stripe_webhook_metadata(
    headers: dict[str, str], body_str: str
) -> dict[str, str | int | bool]:
    """Extract metadata from Stripe webhook for observability."""
    metadata: dict[str, str | int | bool] = dict(payload_size_fields(body_str))

    try:
        try:
            payload = json.loads(body_str)
        except (json.JSONDecodeError, ValueError):
            metadata["parse_error"] = "Failed to parse JSON"
            return metadata

        metadata["event_id"] = payload.get("id", "")
        metadata["event_type"] = payload.get("type", "unknown")
        metadata["livemode"] = bool(payload.get("livemode", False))
        if api_version := payload.get("api_version"):
            metadata["api_version"] = api_version
        if isinstance(request := payload.get("request"), dict) and request.get("id"):
            metadata["request_id"] = request["id"]

    except Exception as e:
        logger.error(f"Error extracting Stripe webhook metadata: {e}")
        metadata["extraction_error"] = str(e)

    return metadata
