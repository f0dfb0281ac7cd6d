import base64
import hashlib
import hmac
import json
from unittest.mock import MagicMock

import pytest

from connectors.base.canonical_event import EventCategory, PayloadError, WebhookDelivery
from connectors.trello import (
    TrelloWebhookVerifier,
    extract_trello_webhook_metadata,
    get_trello_webhook_callback_url,
    normalize_trello_webhook,
    verify_trello_webhook,
)

SECRET = "trello-app-secret"
CALLBACK_URL = "https://hooks.example.com/webhooks/trello/org-1"


def trello_signature(body: bytes, callback_url: str = CALLBACK_URL, secret: str = SECRET) -> str:
    digest = hmac.new(secret.encode(), body + callback_url.encode(), hashlib.sha1).digest()
    return base64.b64encode(digest).decode()


PAYLOAD = {
    "action": {
        "id": "act-1",
        "type": "updateCard",
        "date": "2024-01-15T10:30:00.000Z",
        "data": {"card": {"id": "card-1"}, "board": {"id": "board-1"}},
    },
    "model": {"id": "board-1"},
}


class TestVerifyTrelloWebhook:
    def test_valid(self):
        body = json.dumps(PAYLOAD).encode()
        verify_trello_webhook(
            {"x-trello-webhook": trello_signature(body)}, body, CALLBACK_URL, SECRET
        )

    def test_signature_covers_callback_url(self):
        body = b"{}"
        signature = trello_signature(body, "https://elsewhere.example.com/hook")
        with pytest.raises(ValueError, match="Invalid Trello webhook signature"):
            verify_trello_webhook({"x-trello-webhook": signature}, body, CALLBACK_URL, SECRET)

    def test_missing_header(self):
        with pytest.raises(ValueError, match="Missing"):
            verify_trello_webhook({}, b"{}", CALLBACK_URL, SECRET)


class TestTrelloWebhookVerifier:
    def test_valid(self):
        body = b"{}"
        result = TrelloWebhookVerifier().verify(
            {"x-trello-webhook": trello_signature(body)},
            body,
            MagicMock(webhook_secret=SECRET),
            request_url=CALLBACK_URL,
        )
        assert result.success is True

    def test_requires_callback_url(self):
        result = TrelloWebhookVerifier().verify({}, b"{}", MagicMock(webhook_secret=SECRET))
        assert result.success is False

    def test_requires_secret(self):
        result = TrelloWebhookVerifier().verify(
            {}, b"{}", MagicMock(webhook_secret=None), request_url=CALLBACK_URL
        )
        assert "No signing secret" in (result.error or "")


def test_callback_url_uses_public_base_url(monkeypatch):
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://hooks.example.com/")
    assert get_trello_webhook_callback_url("org-1") == CALLBACK_URL


class TestNormalizeTrelloWebhook:
    def test_card_action(self):
        [event] = normalize_trello_webhook(
            WebhookDelivery(headers={}, body=json.dumps(PAYLOAD).encode(), payload=PAYLOAD)
        )
        assert event.external_id == "act-1"
        assert event.type == "updateCard"
        assert event.category == EventCategory.TASK
        assert event.entity is not None
        assert (event.entity.entity_type, event.entity.external_id) == ("card", "card-1")

    def test_board_action(self):
        payload = {"action": {"id": "act-2", "type": "updateBoard", "data": {}}, "model": {"id": "b"}}
        [event] = normalize_trello_webhook(WebhookDelivery(headers={}, body=b"", payload=payload))
        assert event.entity is not None
        assert event.entity.entity_type == "board"

    def test_missing_action_id(self):
        with pytest.raises(PayloadError):
            normalize_trello_webhook(WebhookDelivery(headers={}, body=b"", payload={"action": {}}))


def test_extract_metadata():
    metadata = extract_trello_webhook_metadata(
        {"x-trello-webhook": "abcdefghijkl"}, json.dumps(PAYLOAD)
    )
    assert metadata["signature_preview"] == "abcdefgh..."
    assert metadata["action_type"] == "updateCard"
    assert metadata["card_id"] == "card-1"
    assert metadata["board_id"] == "board-1"
