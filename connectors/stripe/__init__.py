from connectors.stripe.stripe_event_effects import apply_stripe_event_effects
from connectors.stripe.stripe_webhook_handler import (
    StripeWebhookVerifier,
    extract_stripe_webhook_metadata,
    verify_stripe_webhook,
)
from connectors.stripe.stripe_webhook_normalizer import (
    determine_event_category,
    normalize_stripe_webhook,
)

__all__ = [
    "StripeWebhookVerifier",
    "apply_stripe_event_effects",
    "determine_event_category",
    "extract_stripe_webhook_metadata",
    "normalize_stripe_webhook",
    "verify_stripe_webhook",
]
