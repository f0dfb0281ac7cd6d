import base64
import hashlib
import hmac
import json
from unittest.mock import MagicMock

import pytest

from connectors.base.canonical_event import EventCategory, PayloadError, WebhookDelivery
from connectors.canny import (
    CannyWebhookVerifier,
    canny_board_id,
    canny_event_external_id,
    extract_canny_webhook_metadata,
    normalize_canny_webhook,
    verify_canny_webhook,
)

API_KEY = "canny-api-key"


def _headers(nonce: str = "nonce-1", key: str = API_KEY) -> dict[str, str]:
    digest = hmac.new(key.encode(), nonce.encode(), hashlib.sha256).digest()
    return {"canny-nonce": nonce, "canny-signature": base64.b64encode(digest).decode()}


def _post_payload(event_type: str = "post.created") -> dict:
    return {
        "type": event_type,
        "objectType": "post",
        "created": "2024-03-01T10:00:00.000Z",
        "object": {"id": "p1", "title": "Dark mode", "board": {"id": "b1"}},
    }


class TestVerifyCannyWebhook:
    def test_valid(self):
        verify_canny_webhook(_headers(), b"{}", API_KEY)

    def test_headers_required(self):
        with pytest.raises(ValueError, match="Missing"):
            verify_canny_webhook({"canny-nonce": "n"}, b"{}", API_KEY)

    def test_mismatch(self):
        with pytest.raises(ValueError, match="verification failed"):
            verify_canny_webhook(_headers(key="other"), b"{}", API_KEY)

    def test_verifier_uses_api_key(self):
        integration = MagicMock(api_key=API_KEY, webhook_secret=None)
        assert CannyWebhookVerifier().verify(_headers(), b"{}", integration).success is True

    def test_verifier_without_api_key(self):
        integration = MagicMock(api_key=None, webhook_secret="unused")
        result = CannyWebhookVerifier().verify(_headers(), b"{}", integration)
        assert result.success is False
        assert "No signing secret configured" in result.error


class TestNormalizeCannyWebhook:
    def test_post_event(self):
        payload = _post_payload()
        events = normalize_canny_webhook(
            WebhookDelivery(headers={}, body=json.dumps(payload).encode(), payload=payload)
        )

        assert len(events) == 1
        event = events[0]
        assert event.type == "post.created"
        assert event.category == EventCategory.FEEDBACK
        assert event.metadata == {"board_id": "b1"}
        assert event.entity is not None
        assert event.entity.entity_type == "post"
        assert event.external_id == canny_event_external_id(payload)

    def test_vote_board_comes_from_post(self):
        vote = {"id": "v1", "post": {"id": "p1", "board": {"id": "b2"}}}
        assert canny_board_id(vote) == "b2"

    def test_missing_board(self):
        payload = {"type": "vote.created", "object": {"id": "v1", "post": {"id": "p1"}}}
        with pytest.raises(PayloadError, match="board"):
            normalize_canny_webhook(WebhookDelivery(headers={}, body=b"", payload=payload))

    def test_missing_object(self):
        with pytest.raises(PayloadError):
            normalize_canny_webhook(
                WebhookDelivery(headers={}, body=b"", payload={"type": "post.created"})
            )

    def test_external_id_distinguishes_event_types(self):
        assert canny_event_external_id(_post_payload()) != canny_event_external_id(
            _post_payload("post.deleted")
        )


def test_extract_metadata():
    metadata = extract_canny_webhook_metadata({}, json.dumps(_post_payload()))
    assert metadata["event_type"] == "post.created"
    assert metadata["object_type"] == "post"
