"""Tests for gatekeeper utility functions and error types."""

import json
from uuid import UUID

import pytest

from src.ingest.gatekeeper.errors import (
    IntegrationNotFoundError,
    MalformedPayloadError,
    WebhookAuthenticationError,
    WebhookError,
)
from src.ingest.gatekeeper.utils import (
    check_slack_url_verification,
    get_handshake_secret,
    parse_json_body,
    parse_uuid,
)


class TestCheckSlackUrlVerification:
    def test_challenge_returned(self):
        body = json.dumps({"type": "url_verification", "challenge": "xyz"})
        assert check_slack_url_verification(body) == "xyz"

    def test_missing_challenge_is_empty(self):
        assert check_slack_url_verification('{"type": "url_verification"}') == ""

    def test_event_callback(self):
        assert check_slack_url_verification('{"type": "event_callback"}') is None

    def test_invalid_json(self):
        assert check_slack_url_verification("not json") is None

    def test_non_object(self):
        assert check_slack_url_verification("[1, 2]") is None


def test_get_handshake_secret():
    assert get_handshake_secret({"x-hook-secret": "abc"}) == "abc"
    assert get_handshake_secret({"x-hook-secret": ""}) is None
    assert get_handshake_secret({}) is None


class TestParseJsonBody:
    def test_valid(self):
        assert parse_json_body(b'{"a": 1}') == {"a": 1}

    @pytest.mark.parametrize("body", [b"", b"{", b"\xff\xfe"])
    def test_invalid(self, body):
        with pytest.raises(MalformedPayloadError) as exc_info:
            parse_json_body(body)
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "Invalid JSON body"


def test_parse_uuid():
    value = "2f1e6a4c-3d2b-4c1a-9e8f-7a6b5c4d3e2f"
    assert parse_uuid(value) == UUID(value)
    assert parse_uuid("nope") is None


class TestErrors:
    def test_status_defaults(self):
        assert WebhookAuthenticationError("bad").status_code == 401
        assert IntegrationNotFoundError().status_code == 404
        assert IntegrationNotFoundError().detail == "Integration not found"

    def test_explicit_status_wins(self):
        assert WebhookError("bad", status_code=400).status_code == 400
