"""Utility functions for gatekeeper service."""

import json
import logging
from typing import Any
from uuid import UUID

from src.ingest.gatekeeper.errors import MalformedPayloadError

logger = logging.getLogger(__name__)


def check_slack_url_verification(body_str: str) -> str | None:
    """Check if Slack webhook is a URL verification challenge.

    Args:
        body_str: Webhook body as string

    Returns:
        Challenge string if this is a URL verification, None otherwise
    """
    try:
        payload = json.loads(body_str)
        if isinstance(payload, dict) and payload.get("type") == "url_verification":
            logger.info("Slack URL verification challenge received")
            return payload.get("challenge", "")
    except (json.JSONDecodeError, KeyError):
        pass

    return None


def get_handshake_secret(headers: dict[str, str]) -> str | None:
    """X-Hook-Secret sent by Asana and Trello when a webhook is being registered."""
    return headers.get("x-hook-secret") or None


def parse_json_body(body: bytes) -> Any:
    """Parse a verified body.

    Raises:
        MalformedPayloadError: If the body is not valid JSON
    """
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning(f"Invalid JSON webhook body ({len(body)} bytes)")
        raise MalformedPayloadError()


def parse_uuid(value: str) -> UUID | None:
    try:
        return UUID(value)
    except ValueError:
        return None
