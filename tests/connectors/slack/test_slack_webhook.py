"""Tests for Slack request verification and event normalization."""

import hashlib
import hmac
import json
import time
from datetime import UTC, datetime

import pytest

from connectors.base.canonical_event import EventCategory, PayloadError, WebhookDelivery
from connectors.slack import (
    SlackWebhookVerifier,
    extract_slack_webhook_metadata,
    normalize_slack_webhook,
    parse_slack_mentions,
    verify_slack_webhook,
)

SECRET = "slack-signing-secret"


def _headers(body: bytes, timestamp: int, secret: str = SECRET) -> dict[str, str]:
    basestring = f"v0:{timestamp}:".encode() + body
    signature = "v0=" + hmac.new(secret.encode(), basestring, hashlib.sha256).hexdigest()
    return {"x-slack-request-timestamp": str(timestamp), "x-slack-signature": signature}


def _callback(event: dict, **extra) -> dict:
    return {
        "type": "event_callback",
        "team_id": "T123",
        "event_id": "Ev001",
        "event_time": 1700000000,
        "event": event,
        **extra,
    }


def _delivery(payload) -> WebhookDelivery:
    return WebhookDelivery(headers={}, body=json.dumps(payload).encode(), payload=payload)


class TestVerifySlackWebhook:
    def test_valid_signature_within_window(self):
        body = b'{"type":"event_callback"}'
        verify_slack_webhook(_headers(body, 1700000000), body, SECRET, now=1700000100)

    def test_stale_timestamp_rejected_before_signature(self):
        body = b"{}"
        headers = {"x-slack-request-timestamp": "1700000000", "x-slack-signature": "v0=bogus"}
        with pytest.raises(ValueError, match="outside the allowed window"):
            verify_slack_webhook(headers, body, SECRET, now=1700000301, window_seconds=300)

    def test_future_timestamp_rejected(self):
        body = b"{}"
        with pytest.raises(ValueError, match="outside the allowed window"):
            verify_slack_webhook(
                _headers(body, 1700001000), body, SECRET, now=1700000000, window_seconds=300
            )

    def test_wrong_secret(self):
        body = b"{}"
        with pytest.raises(ValueError, match="verification failed"):
            verify_slack_webhook(
                _headers(body, 1700000000, "other"), body, SECRET, now=1700000000
            )

    def test_missing_headers(self):
        with pytest.raises(ValueError, match="Missing required"):
            verify_slack_webhook({}, b"{}", SECRET, now=1700000000)

    def test_non_numeric_timestamp(self):
        headers = {"x-slack-request-timestamp": "soon", "x-slack-signature": "v0=x"}
        with pytest.raises(ValueError, match="Invalid timestamp"):
            verify_slack_webhook(headers, b"{}", SECRET, now=1700000000)


class TestSlackWebhookVerifier:
    def test_environment_secret(self, monkeypatch):
        monkeypatch.setenv("SLACK_SIGNING_SECRET", SECRET)
        body = b"{}"
        result = SlackWebhookVerifier().verify(_headers(body, int(time.time())), body)
        assert result.success is True

    def test_replay_window_is_configurable(self, monkeypatch):
        monkeypatch.setenv("SLACK_SIGNING_SECRET", SECRET)
        monkeypatch.setenv("SLACK_REPLAY_WINDOW_SECONDS", "10")
        body = b"{}"
        result = SlackWebhookVerifier().verify(_headers(body, int(time.time()) - 60), body)
        assert result.success is False


class TestParseSlackMentions:
    def test_plain_and_labelled_mentions_deduplicated(self):
        text = "hey <@U111> and <@U222|bob>, ping <@U111>"
        assert parse_slack_mentions(text) == ["U111", "U222"]

    def test_no_text(self):
        assert parse_slack_mentions(None) == []
        assert parse_slack_mentions("no mentions here") == []


class TestNormalizeSlackWebhook:
    def test_message_event(self):
        payload = _callback(
            {"type": "message", "channel": "C1", "user": "U1", "text": "hi <@U9>", "ts": "1.1"}
        )
        [event] = normalize_slack_webhook(_delivery(payload))

        assert event.external_id == "Ev001"
        assert event.type == "message"
        assert event.category == EventCategory.COMMUNICATION
        assert event.occurred_at == datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)
        assert event.entity is not None
        assert event.entity.external_id == "C1"
        assert event.metadata == {"team_id": "T123", "mentions": ["U9"]}

    def test_subtype_is_part_of_type(self):
        payload = _callback(
            {
                "type": "message",
                "subtype": "message_changed",
                "channel": "C1",
                "message": {"ts": "1.1", "text": "edited <@U5>"},
            }
        )
        [event] = normalize_slack_webhook(_delivery(payload))
        assert event.type == "message.message_changed"
        assert event.metadata["mentions"] == ["U5"]

    def test_channel_object(self):
        payload = _callback({"type": "channel_rename", "channel": {"id": "C7", "name": "new"}})
        [event] = normalize_slack_webhook(_delivery(payload))
        assert event.entity is not None
        assert event.entity.external_id == "C7"

    def test_non_callback_envelope_yields_nothing(self):
        assert normalize_slack_webhook(_delivery({"type": "app_rate_limited"})) == []

    def test_missing_event_id(self):
        payload = _callback({"type": "message", "channel": "C1"})
        del payload["event_id"]
        with pytest.raises(PayloadError):
            normalize_slack_webhook(_delivery(payload))


def test_extract_metadata():
    body = json.dumps(_callback({"type": "message", "subtype": "bot_message", "channel": "C1"}))
    metadata = extract_slack_webhook_metadata({"x-slack-retry-num": "1"}, body)
    assert metadata["retry_num"] == "1"
    assert metadata["team_id"] == "T123"
    assert metadata["entity_type"] == "message"
    assert metadata["entity_subtype"] == "bot_message"
    assert metadata["entity_id"] == "C1"
