"""
Slack Events API verification and observability helpers.
"""

import hashlib
import hmac
import json
import logging
import time

from src.ingest.gatekeeper.verification import EnvironmentSecretVerifier
from src.utils.config import get_slack_replay_window_seconds, get_slack_signing_secret
from src.utils.size_formatting import payload_size_fields

logger = logging.getLogger(__name__)


class SlackWebhookVerifier(EnvironmentSecretVerifier):
    """Verifier for Slack webhooks using HMAC-SHA256 signatures."""

    source_type = "slack"
    secret_getter = staticmethod(lambda: get_slack_signing_secret())
    verify_func = staticmethod(lambda h, b, s: verify_slack_webhook(h, b, s))


def verify_slack_webhook(
    headers: dict[str, str],
    body: bytes,
    secret: str,
    now: float | None = None,
    window_seconds: int | None = None,
) -> None:
    """Verify Slack webhook timestamp window, then signature."""
    if not secret:
        raise ValueError("Slack signing secret is not configured")

    timestamp = headers.get("x-slack-request-timestamp")
    slack_signature = headers.get("x-slack-signature")

    if not timestamp or not slack_signature:
        raise ValueError("Missing required Slack signature headers")

    try:
        request_time = int(timestamp)
    except ValueError:
        raise ValueError("Invalid timestamp format in Slack signature headers")

    # Window check precedes the HMAC comparison
    window = window_seconds if window_seconds is not None else get_slack_replay_window_seconds()
    current_time = time.time() if now is None else now
    if abs(current_time - request_time) > window:
        raise ValueError("Slack signature timestamp outside the allowed window")

    sig_basestring = b"v0:" + timestamp.encode("utf-8") + b":" + body

    expected_signature = (
        "v0=" + hmac.new(secret.encode("utf-8"), sig_basestring, hashlib.sha256).hexdigest()
    )

    if not hmac.compare_digest(expected_signature, slack_signature):
        raise ValueError("Slack webhook signature verification failed")


def extract_slack_webhook_metadata(
    headers: dict[str, str], body_str: str
) -> dict[str, str | int | bool]:
    """Extract metadata from Slack webhook for observability."""
    metadata: dict[str, str | int | bool] = dict(payload_size_fields(body_str))

    try:
        if retry_num := headers.get("x-slack-retry-num"):
            metadata["retry_num"] = retry_num
        if retry_reason := headers.get("x-slack-retry-reason"):
            metadata["retry_reason"] = retry_reason

        try:
            payload = json.loads(body_str)
        except (json.JSONDecodeError, ValueError):
            metadata["parse_error"] = "Failed to parse JSON"
            return metadata

        metadata["team_id"] = payload.get("team_id", "")
        metadata["type"] = payload.get("type", "unknown")
        metadata["event_id"] = payload.get("event_id", "")
        metadata["event_time"] = payload.get("event_time", 0)

        if event := payload.get("event"):
            metadata["entity_type"] = event.get("type", "unknown")
            if subtype := event.get("subtype"):
                metadata["entity_subtype"] = subtype
            if isinstance(channel := event.get("channel"), str):
                metadata["entity_id"] = channel

    except Exception as e:
        logger.error(f"Error extracting Slack webhook metadata: {e}")
        metadata["extraction_error"] = str(e)

    return metadata
