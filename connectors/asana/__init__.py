from connectors.asana.asana_event_effects import apply_asana_event_effects
from connectors.asana.asana_webhook_handler import (
    AsanaWebhookVerifier,
    extract_asana_webhook_metadata,
    verify_asana_webhook,
)
from connectors.asana.asana_webhook_normalizer import (
    asana_event_external_id,
    normalize_asana_webhook,
)

__all__ = [
    "AsanaWebhookVerifier",
    "apply_asana_event_effects",
    "asana_event_external_id",
    "extract_asana_webhook_metadata",
    "normalize_asana_webhook",
    "verify_asana_webhook",
]
