from connectors.slack.slack_event_effects import apply_slack_event_effects
from connectors.slack.slack_webhook_handler import (
    SlackWebhookVerifier,
    extract_slack_webhook_metadata,
    verify_slack_webhook,
)
from connectors.slack.slack_webhook_normalizer import (
    normalize_slack_webhook,
    parse_slack_mentions,
)

__all__ = [
    "SlackWebhookVerifier",
    "apply_slack_event_effects",
    "extract_slack_webhook_metadata",
    "normalize_slack_webhook",
    "parse_slack_mentions",
    "verify_slack_webhook",
]
