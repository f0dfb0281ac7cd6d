"""Configuration utility for the Builders' Stack ingestion service.

This module provides centralized configuration management with:
- Environment variables as the only source
- Type-safe access to configuration values
- Named accessors for every setting the webhook pipeline reads
"""

import os
from typing import Any


def parse_config_value(value: str) -> str | bool | int | float:
    if value.lower() == "true":
        return True
    elif value.lower() == "false":
        return False
    else:
        # Try to parse as a number
        try:
            return int(value)
        except ValueError:
            try:
                return float(value)
            except ValueError:
                # Return as string
                return value


def get_config_value(key: str, default: Any = None) -> Any:
    """Get a configuration value from environment variables.

    Args:
        key: Configuration key name (e.g., "DATABASE_URL")
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    env_value = os.environ.get(key)
    if env_value is not None:
        return parse_config_value(env_value)

    return default


def get_config_value_str(key: str) -> str | None:
    """
    Get a configuration value from environment variables without coercion.

    Secrets must go through here: a purely numeric secret would otherwise come back as an int.
    """
    return os.environ.get(key)


def get_database_url() -> str:
    """Get database connection URL.

    Returns:
        PostgreSQL connection string from DATABASE_URL config

    Raises:
        ValueError: If DATABASE_URL is not configured
    """
    url = get_config_value_str("DATABASE_URL")
    if url:
        return url

    raise ValueError("Database URL not found. Please provide DATABASE_URL environment variable")


def get_builders_environment() -> str:
    """Get deployment environment (local, staging, production) from env var."""
    return get_config_value("BUILDERS_ENVIRONMENT", "local")


def get_github_webhook_secret() -> str:
    """Shared secret configured on every GitHub repository webhook.

    Returns an empty string when unset; the verifier rejects all deliveries in that case.
    """
    return get_config_value_str("GITHUB_WEBHOOK_SECRET") or ""


def get_slack_signing_secret() -> str:
    """Slack app signing secret. Empty when unset."""
    return get_config_value_str("SLACK_SIGNING_SECRET") or ""


def get_slack_replay_window_seconds() -> int:
    """Maximum age (either direction) of a Slack request timestamp."""
    return int(get_config_value("SLACK_REPLAY_WINDOW_SECONDS", 300))


def get_public_base_url() -> str:
    """Get the externally reachable base URL of the gatekeeper.

    Trello signs the callback URL it was registered with, so this must match the
    URL used when the webhook was created.

    Raises:
        ValueError: If PUBLIC_BASE_URL is not configured
    """
    url = get_config_value_str("PUBLIC_BASE_URL")
    if not url:
        raise ValueError("PUBLIC_BASE_URL environment variable is required")
    return url.rstrip("/")


def get_event_max_attempts() -> int:
    """Processing attempts after which an event stops being replayed."""
    return int(get_config_value("EVENT_MAX_ATTEMPTS", 3))


def get_event_replay_grace_seconds() -> int:
    """Minimum event age before the replay job picks it up.

    Keeps the replay job from racing deferred processing of fresh deliveries.
    """
    return int(get_config_value("EVENT_REPLAY_GRACE_SECONDS", 120))


def get_event_replay_batch_size() -> int:
    return int(get_config_value("EVENT_REPLAY_BATCH_SIZE", 100))
