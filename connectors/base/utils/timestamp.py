"""Timestamp parsing utilities for connectors."""

from datetime import UTC, datetime
from typing import Any


def parse_iso_timestamp(timestamp: str) -> datetime:
    """Parse ISO 8601 timestamp, handling Z suffix.

    Naive results are assumed to be UTC.
    """
    if timestamp.endswith("Z"):
        timestamp = timestamp[:-1] + "+00:00"
    parsed = datetime.fromisoformat(timestamp)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_epoch_timestamp(value: int | float | str) -> datetime:
    """Parse Unix epoch seconds, including Slack's "1700000000.000200" ts strings."""
    return datetime.fromtimestamp(float(value), tz=UTC)


def parse_provider_timestamp(value: Any | None, default: datetime | None = None) -> datetime | None:
    """Best-effort parse of the timestamp shapes providers send.

    Handles:
    - None / empty -> default
    - Unix epoch numbers or numeric strings
    - ISO 8601 strings (with or without Z)

    Unparseable values return the default.
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        try:
            return parse_epoch_timestamp(value)
        except (ValueError, OverflowError, OSError):
            return default
    if isinstance(value, str):
        try:
            return parse_epoch_timestamp(value)
        except (ValueError, OverflowError, OSError):
            pass
        try:
            return parse_iso_timestamp(value)
        except ValueError:
            return default
    return default
