"""Utility functions for connectors."""

from connectors.base.utils.timestamp import (
    parse_epoch_timestamp,
    parse_iso_timestamp,
    parse_provider_timestamp,
)

__all__ = [
    "parse_epoch_timestamp",
    "parse_iso_timestamp",
    "parse_provider_timestamp",
]
