from connectors.trello.trello_webhook_handler import (
    TrelloWebhookVerifier,
    extract_trello_webhook_metadata,
    get_trello_webhook_callback_url,
    verify_trello_webhook,
)
from connectors.trello.trello_webhook_normalizer import normalize_trello_webhook

__all__ = [
    "TrelloWebhookVerifier",
    "extract_trello_webhook_metadata",
    "get_trello_webhook_callback_url",
    "normalize_trello_webhook",
    "verify_trello_webhook",
]
