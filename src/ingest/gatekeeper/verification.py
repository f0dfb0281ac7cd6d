"""Webhook verification protocol and result types.

Each provider ships a verifier that:
1. Looks up the secret it needs (process environment or the integration row)
2. Performs the provider's signature check on the exact request bytes
3. Returns success/failure without raising

There is no skip path: a verifier without a secret rejects every delivery.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from src.database.integrations import Integration


@dataclass
class VerificationResult:
    """Result of webhook verification."""

    success: bool
    error: str | None = None


class WebhookVerifier(Protocol):
    """Protocol for webhook verification handlers."""

    # HTTP status returned when the signature check itself fails
    failure_status_code: int

    def verify(
        self,
        headers: dict[str, str],
        body: bytes,
        integration: Integration | None = None,
        request_url: str | None = None,
        query_params: dict[str, str] | None = None,
    ) -> VerificationResult:
        """Verify a webhook delivery.

        Args:
            headers: HTTP headers from the webhook request (lower-cased names)
            body: Raw request body as bytes
            integration: Resolved integration, for providers with per-integration secrets
            request_url: Callback URL, for providers that sign it (Trello)
            query_params: Query string parameters, for providers that authenticate by token

        Returns:
            VerificationResult indicating success or failure with error message
        """
        ...


# Type alias for verification functions; they raise ValueError on failure
VerifyFunc = Callable[[dict[str, str], bytes, str], None]


class BaseSigningSecretVerifier:
    """Base class for verifiers built on a shared signing secret.

    Subclasses define:
    - source_type: Provider name used in error messages
    - verify_func: Function that performs the check and raises ValueError on failure
    - get_signing_secret(): Where the secret comes from
    """

    source_type: str
    verify_func: VerifyFunc
    failure_status_code: int = 401

    def get_signing_secret(self, integration: Integration | None) -> str | None:
        raise NotImplementedError

    def verify(
        self,
        headers: dict[str, str],
        body: bytes,
        integration: Integration | None = None,
        request_url: str | None = None,
        query_params: dict[str, str] | None = None,
    ) -> VerificationResult:
        del request_url, query_params  # unused for signing secret verifiers
        signing_secret = self.get_signing_secret(integration)
        if not signing_secret:
            return VerificationResult(
                success=False,
                error=f"No signing secret configured for {self.source_type} webhooks",
            )

        try:
            self.verify_func(headers, body, signing_secret)
            return VerificationResult(success=True)
        except ValueError as e:
            return VerificationResult(success=False, error=str(e))


class EnvironmentSecretVerifier(BaseSigningSecretVerifier):
    """Verifier whose secret is global to the deployment (GitHub, Slack)."""

    secret_getter: Callable[[], str]

    def get_signing_secret(self, integration: Integration | None) -> str | None:
        return self.secret_getter()


class IntegrationSecretVerifier(BaseSigningSecretVerifier):
    """Verifier whose secret is stored on the organization's integration (Stripe, Asana)."""

    def get_signing_secret(self, integration: Integration | None) -> str | None:
        if integration is None:
            return None
        return integration.webhook_secret
