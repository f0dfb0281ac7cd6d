from connectors.github.github_event_effects import apply_github_event_effects
from connectors.github.github_webhook_handler import (
    GitHubWebhookVerifier,
    extract_github_webhook_metadata,
    verify_github_webhook,
)
from connectors.github.github_webhook_normalizer import (
    extract_github_repository_id,
    normalize_github_webhook,
)

__all__ = [
    "GitHubWebhookVerifier",
    "apply_github_event_effects",
    "extract_github_repository_id",
    "extract_github_webhook_metadata",
    "normalize_github_webhook",
    "verify_github_webhook",
]
