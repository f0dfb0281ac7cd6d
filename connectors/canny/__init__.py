from connectors.canny.canny_event_effects import apply_canny_event_effects
from connectors.canny.canny_webhook_handler import (
    CannyWebhookVerifier,
    extract_canny_webhook_metadata,
    verify_canny_webhook,
)
from connectors.canny.canny_webhook_normalizer import (
    canny_board_id,
    canny_event_external_id,
    normalize_canny_webhook,
)

__all__ = [
    "CannyWebhookVerifier",
    "apply_canny_event_effects",
    "canny_board_id",
    "canny_event_external_id",
    "extract_canny_webhook_metadata",
    "normalize_canny_webhook",
    "verify_canny_webhook",
]
