from connectors.posthog.posthog_event_effects import apply_posthog_event_effects
from connectors.posthog.posthog_webhook_handler import (
    PostHogWebhookVerifier,
    extract_posthog_webhook_metadata,
    verify_posthog_webhook,
)
from connectors.posthog.posthog_webhook_normalizer import (
    normalize_posthog_webhook,
    posthog_event_attributes,
    posthog_event_fields,
)

__all__ = [
    "PostHogWebhookVerifier",
    "apply_posthog_event_effects",
    "extract_posthog_webhook_metadata",
    "normalize_posthog_webhook",
    "posthog_event_attributes",
    "posthog_event_fields",
    "verify_posthog_webhook",
]
