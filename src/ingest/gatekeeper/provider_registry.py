"""Webhook provider registry.

The provider set is fixed, so this is a closed mapping from provider tag to the
capabilities the dispatcher needs: verify, normalize, apply side effects and
extract log metadata.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from connectors.base.canonical_event import CanonicalEvent, WebhookDelivery
from connectors.base.event_effects import EffectFunc
from src.database.integrations import ToolName
from src.ingest.gatekeeper.verification import WebhookVerifier

Normalizer = Callable[[WebhookDelivery], list[CanonicalEvent]]
MetadataExtractor = Callable[[dict[str, str], str], dict[str, str | int | bool]]


class WebhookProvider(str, Enum):
    """Providers the gatekeeper accepts deliveries from."""

    GITHUB = "github"
    SLACK = "slack"
    STRIPE = "stripe"
    ASANA = "asana"
    POSTHOG = "posthog"
    TRELLO = "trello"
    JIRA = "jira"
    CANNY = "canny"


@dataclass(frozen=True)
class ProviderSpec:
    provider: WebhookProvider
    tool_name: ToolName
    verifier: WebhookVerifier
    normalize: Normalizer
    extract_metadata: MetadataExtractor
    apply_effects: EffectFunc | None = None
    # Providers with short ack windows get their side effects after the response
    defer_processing: bool = False

    @property
    def display_name(self) -> str:
        return {WebhookProvider.GITHUB: "GitHub", WebhookProvider.POSTHOG: "PostHog"}.get(
            self.provider, self.provider.value.capitalize()
        )


def _build_provider_registry() -> dict[WebhookProvider, ProviderSpec]:
    """Build the registry lazily to avoid circular imports.

    Returns:
        Dictionary mapping providers to their capabilities.
    """
    # Connectors import the gatekeeper's verification module, so import them here
    from connectors.asana import (
        AsanaWebhookVerifier,
        apply_asana_event_effects,
        extract_asana_webhook_metadata,
        normalize_asana_webhook,
    )
    from connectors.canny import (
        CannyWebhookVerifier,
        apply_canny_event_effects,
        extract_canny_webhook_metadata,
        normalize_canny_webhook,
    )
    from connectors.github import (
        GitHubWebhookVerifier,
        apply_github_event_effects,
        extract_github_webhook_metadata,
        normalize_github_webhook,
    )
    from connectors.jira import (
        JiraWebhookVerifier,
        apply_jira_event_effects,
        extract_jira_webhook_metadata,
        normalize_jira_webhook,
    )
    from connectors.posthog import (
        PostHogWebhookVerifier,
        apply_posthog_event_effects,
        extract_posthog_webhook_metadata,
        normalize_posthog_webhook,
    )
    from connectors.slack import (
        SlackWebhookVerifier,
        apply_slack_event_effects,
        extract_slack_webhook_metadata,
        normalize_slack_webhook,
    )
    from connectors.stripe import (
        StripeWebhookVerifier,
        apply_stripe_event_effects,
        extract_stripe_webhook_metadata,
        normalize_stripe_webhook,
    )
    from connectors.trello import (
        TrelloWebhookVerifier,
        extract_trello_webhook_metadata,
        normalize_trello_webhook,
    )

    specs = [
        ProviderSpec(
            provider=WebhookProvider.GITHUB,
            tool_name=ToolName.GITHUB,
            verifier=GitHubWebhookVerifier(),
            normalize=normalize_github_webhook,
            extract_metadata=extract_github_webhook_metadata,
            apply_effects=apply_github_event_effects,
        ),
        ProviderSpec(
            provider=WebhookProvider.SLACK,
            tool_name=ToolName.SLACK,
            verifier=SlackWebhookVerifier(),
            normalize=normalize_slack_webhook,
            extract_metadata=extract_slack_webhook_metadata,
            apply_effects=apply_slack_event_effects,
            defer_processing=True,
        ),
        ProviderSpec(
            provider=WebhookProvider.STRIPE,
            tool_name=ToolName.STRIPE,
            verifier=StripeWebhookVerifier(),
            normalize=normalize_stripe_webhook,
            extract_metadata=extract_stripe_webhook_metadata,
            apply_effects=apply_stripe_event_effects,
            defer_processing=True,
        ),
        ProviderSpec(
            provider=WebhookProvider.ASANA,
            tool_name=ToolName.ASANA,
            verifier=AsanaWebhookVerifier(),
            normalize=normalize_asana_webhook,
            extract_metadata=extract_asana_webhook_metadata,
            apply_effects=apply_asana_event_effects,
        ),
        ProviderSpec(
            provider=WebhookProvider.POSTHOG,
            tool_name=ToolName.POSTHOG,
            verifier=PostHogWebhookVerifier(),
            normalize=normalize_posthog_webhook,
            extract_metadata=extract_posthog_webhook_metadata,
            apply_effects=apply_posthog_event_effects,
        ),
        ProviderSpec(
            provider=WebhookProvider.TRELLO,
            tool_name=ToolName.TRELLO,
            verifier=TrelloWebhookVerifier(),
            normalize=normalize_trello_webhook,
            extract_metadata=extract_trello_webhook_metadata,
        ),
        ProviderSpec(
            provider=WebhookProvider.JIRA,
            tool_name=ToolName.JIRA,
            verifier=JiraWebhookVerifier(),
            normalize=normalize_jira_webhook,
            extract_metadata=extract_jira_webhook_metadata,
            apply_effects=apply_jira_event_effects,
        ),
        ProviderSpec(
            provider=WebhookProvider.CANNY,
            tool_name=ToolName.CANNY,
            verifier=CannyWebhookVerifier(),
            normalize=normalize_canny_webhook,
            extract_metadata=extract_canny_webhook_metadata,
            apply_effects=apply_canny_event_effects,
        ),
    ]
    return {spec.provider: spec for spec in specs}


# Lazily initialized registry
_provider_registry: dict[WebhookProvider, ProviderSpec] | None = None


def get_provider(provider: WebhookProvider | str) -> ProviderSpec | None:
    """Get the capabilities for a provider.

    Args:
        provider: The provider (enum or string value)

    Returns:
        The provider spec, or None for an unknown provider
    """
    global _provider_registry
    if _provider_registry is None:
        _provider_registry = _build_provider_registry()

    if isinstance(provider, str) and not isinstance(provider, WebhookProvider):
        try:
            provider = WebhookProvider(provider)
        except ValueError:
            return None

    return _provider_registry.get(provider)


def get_all_providers() -> list[WebhookProvider]:
    return list(WebhookProvider)
