"""Tests for GitHub webhook verification and normalization."""

import hashlib
import hmac
import json
from datetime import UTC, datetime

import pytest

from connectors.base.canonical_event import EventCategory, PayloadError, WebhookDelivery
from connectors.github import (
    GitHubWebhookVerifier,
    extract_github_repository_id,
    extract_github_webhook_metadata,
    normalize_github_webhook,
    verify_github_webhook,
)

SECRET = "github-test-secret"


def _sign(body: bytes, secret: str = SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def _delivery(event_name: str, payload: dict, delivery_id: str | None = "delivery-1"):
    headers = {"x-github-event": event_name}
    if delivery_id:
        headers["x-github-delivery"] = delivery_id
    return WebhookDelivery(headers=headers, body=json.dumps(payload).encode(), payload=payload)


class TestVerifyGitHubWebhook:
    def test_valid_signature(self):
        body = b'{"zen": "Keep it logically awesome."}'
        verify_github_webhook({"x-hub-signature-256": _sign(body)}, body, SECRET)

    def test_signature_over_different_bytes_fails(self):
        body = b'{"a":1}'
        with pytest.raises(ValueError, match="verification failed"):
            verify_github_webhook({"x-hub-signature-256": _sign(b'{"a": 1}')}, body, SECRET)

    def test_missing_header(self):
        with pytest.raises(ValueError, match="Missing X-Hub-Signature-256"):
            verify_github_webhook({}, b"{}", SECRET)

    def test_wrong_prefix(self):
        with pytest.raises(ValueError, match="sha256= prefix"):
            verify_github_webhook({"x-hub-signature-256": "sha1=abc"}, b"{}", SECRET)


class TestGitHubWebhookVerifier:
    def test_uses_environment_secret(self, monkeypatch):
        monkeypatch.setenv("GITHUB_WEBHOOK_SECRET", SECRET)
        body = b"{}"
        result = GitHubWebhookVerifier().verify({"x-hub-signature-256": _sign(body)}, body)
        assert result.success is True

    def test_unconfigured_secret_rejects(self, monkeypatch):
        monkeypatch.delenv("GITHUB_WEBHOOK_SECRET", raising=False)
        body = b"{}"
        result = GitHubWebhookVerifier().verify({"x-hub-signature-256": _sign(body)}, body)
        assert result.success is False
        assert "No signing secret" in (result.error or "")

    def test_numeric_secret_is_not_coerced(self, monkeypatch):
        monkeypatch.setenv("GITHUB_WEBHOOK_SECRET", "12345")
        body = b"{}"
        result = GitHubWebhookVerifier().verify(
            {"x-hub-signature-256": _sign(body, "12345")}, body
        )
        assert result.success is True


class TestNormalizeGitHubWebhook:
    def test_pull_request_event(self):
        payload = {
            "action": "opened",
            "repository": {"id": 42},
            "pull_request": {"number": 7, "updated_at": "2024-01-15T10:30:00Z"},
        }
        [event] = normalize_github_webhook(_delivery("pull_request", payload))

        assert event.external_id == "delivery-1"
        assert event.source_tool == "github"
        assert event.type == "pull_request.opened"
        assert event.category == EventCategory.CODE
        assert event.occurred_at == datetime(2024, 1, 15, 10, 30, tzinfo=UTC)
        assert event.entity is not None
        assert event.entity.external_id == "42"
        assert event.raw_data == payload

    def test_push_uses_head_commit_timestamp(self):
        payload = {
            "repository": {"id": 42},
            "head_commit": {"timestamp": "2024-02-01T08:00:00+00:00"},
            "commits": [],
        }
        [event] = normalize_github_webhook(_delivery("push", payload))
        assert event.type == "push"
        assert event.occurred_at == datetime(2024, 2, 1, 8, 0, tzinfo=UTC)

    def test_event_without_repository(self):
        [event] = normalize_github_webhook(_delivery("ping", {"zen": "hi"}))
        assert event.type == "ping"
        assert event.entity is None

    def test_missing_delivery_id_falls_back_to_body_digest(self):
        delivery = _delivery("ping", {"zen": "hi"}, delivery_id=None)
        [event] = normalize_github_webhook(delivery)
        assert event.external_id == delivery.body_digest

    def test_missing_event_header(self):
        delivery = WebhookDelivery(headers={}, body=b"{}", payload={})
        with pytest.raises(PayloadError):
            normalize_github_webhook(delivery)

    def test_non_object_payload(self):
        delivery = WebhookDelivery(headers={"x-github-event": "push"}, body=b"[]", payload=[])
        with pytest.raises(PayloadError):
            normalize_github_webhook(delivery)


def test_extract_repository_id():
    assert extract_github_repository_id({"repository": {"id": 9}}) == "9"
    assert extract_github_repository_id({"repository": {}}) is None
    assert extract_github_repository_id({}) is None


def test_extract_metadata_excludes_names():
    body = json.dumps(
        {
            "action": "opened",
            "repository": {"id": 1, "full_name": "acme/secret-project"},
            "sender": {"id": 2, "login": "octocat", "type": "User"},
        }
    )
    metadata = extract_github_webhook_metadata(
        {"x-github-event": "issues", "x-github-delivery": "d"}, body
    )
    assert metadata["event_type"] == "issues"
    assert metadata["repository_id"] == 1
    assert metadata["sender_type"] == "User"
    assert "octocat" not in json.dumps(metadata)
    assert metadata["payload_size"] == len(body)


def test_extract_metadata_invalid_json():
    metadata = extract_github_webhook_metadata({}, "not json")
    assert metadata["parse_error"] == "Failed to parse JSON"
