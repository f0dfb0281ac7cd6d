"""Webhook handler functions for gatekeeper service.

Every handler follows the same pipeline:
handshake check (no DB) -> verify -> resolve integration -> parse JSON ->
normalize -> record events -> process (inline or deferred) -> 200.

Providers whose secret lives on the integration (Stripe, Asana, PostHog, Trello,
Jira, Canny) resolve the integration before verifying and only accept deliveries
for active or syncing integrations. GitHub and Slack verify first.
"""

import hashlib

import newrelic.agent
from fastapi import BackgroundTasks, HTTPException, Request, Response
from fastapi.responses import PlainTextResponse

from connectors.base.canonical_event import PayloadError, WebhookDelivery
from connectors.base.event_effects import EffectContext
from connectors.github import extract_github_repository_id
from connectors.trello import get_trello_webhook_callback_url
from src.database.code_repositories import CodeRepositoriesRepository
from src.database.integrations import Integration, IntegrationsRepository, ToolName
from src.ingest.gatekeeper.errors import (
    IntegrationNotFoundError,
    MalformedPayloadError,
    RepositoryNotFoundError,
    WebhookAuthenticationError,
    WebhookBadRequestError,
    WebhookError,
)
from src.ingest.gatekeeper.models import WebhookResponse
from src.ingest.gatekeeper.provider_registry import ProviderSpec, WebhookProvider, get_provider
from src.ingest.gatekeeper.services.event_writer import EventWriter
from src.ingest.gatekeeper.utils import (
    check_slack_url_verification,
    get_handshake_secret,
    parse_json_body,
    parse_uuid,
)
from src.utils.logging import LogContext, get_logger
from src.utils.size_formatting import payload_size_fields

logger = get_logger(__name__)


def _provider(provider: WebhookProvider) -> ProviderSpec:
    spec = get_provider(provider)
    if spec is None:
        raise RuntimeError(f"Provider {provider.value} is not registered")
    return spec


def _extract_webhook_metadata(
    provider: ProviderSpec, headers: dict[str, str], body_str: str
) -> dict[str, str | int | bool]:
    """Extract metadata from webhook payload for observability.

    Returns:
        Dictionary containing extracted metadata, always includes payload_size
    """
    try:
        return provider.extract_metadata(headers, body_str)
    except Exception as e:
        # Always return at least basic information
        logger.error(f"Error extracting webhook metadata for {provider.provider.value}: {e}")
        return {**payload_size_fields(body_str), "metadata_extraction_error": str(e)}


def _delivery_id(headers: dict[str, str], body: bytes) -> str:
    return headers.get("x-github-delivery") or hashlib.sha256(body).hexdigest()[:16]


def _verify_and_raise(
    provider: ProviderSpec,
    headers: dict[str, str],
    body: bytes,
    integration: Integration | None = None,
    request_url: str | None = None,
    query_params: dict[str, str] | None = None,
) -> None:
    """Verify webhook and raise on failure.

    Raises:
        WebhookBadRequestError: The secret is not configured (400)
        WebhookError: The check failed; status is the provider's failure code (401, Stripe 400)
    """
    verifier = provider.verifier
    result = verifier.verify(headers, body, integration, request_url, query_params)
    if result.success:
        return

    error_msg = result.error or "Verification failed"
    logger.warning(
        f"Failed to verify {provider.provider.value} webhook: {error_msg}",
        provider=provider.provider.value,
        delivery_id=_delivery_id(headers, body),
    )

    error_lower = error_msg.lower()
    # 400 Bad Request: Configuration/setup issues
    if "not configured" in error_lower or "no signing secret" in error_lower:
        raise WebhookBadRequestError(error_msg)
    if verifier.failure_status_code == 401:
        raise WebhookAuthenticationError(error_msg)
    raise WebhookError(error_msg, status_code=verifier.failure_status_code)


async def _resolve_integration(
    request: Request, provider: ProviderSpec, organization_id: str
) -> Integration:
    """Load the organization's integration for a provider; 404 unless it is active or syncing."""
    integrations: IntegrationsRepository = request.app.state.integrations
    integration = await integrations.get_by_organization_and_tool(
        organization_id, provider.tool_name
    )
    if integration is None or not integration.accepts_webhooks:
        logger.warning(
            f"{provider.display_name} webhook received for unknown integration",
            organization_id=organization_id,
            integration_status=integration.status if integration else None,
        )
        raise IntegrationNotFoundError()
    return integration


def _internal_error(provider: str, e: Exception) -> HTTPException:
    """Report an unexpected failure and build the generic 500 sent to the provider."""
    newrelic.agent.record_exception()
    logger.error(f"Unexpected error processing {provider} webhook: {e}")
    return HTTPException(status_code=500, detail="Internal server error")


async def _ingest_verified_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    provider: ProviderSpec,
    organization_id: str,
    integration: Integration | None,
    headers: dict[str, str],
    body: bytes,
    payload: object,
    query_params: dict[str, str] | None = None,
) -> WebhookResponse:
    """Normalize, record and process an already-verified delivery."""
    delivery = WebhookDelivery(
        headers=headers, body=body, payload=payload, query_params=query_params or {}
    )
    try:
        events = provider.normalize(delivery)
    except PayloadError as e:
        logger.warning(
            f"Malformed {provider.provider.value} payload: {e}", payload_size=len(body)
        )
        raise MalformedPayloadError(str(e))

    webhook_metadata = _extract_webhook_metadata(
        provider, headers, body.decode("utf-8", errors="replace")
    )
    tracking_context = {f"webhook_meta_{key}": value for key, value in webhook_metadata.items()}

    with LogContext(organization_id=organization_id, **tracking_context):
        writer: EventWriter = request.app.state.event_writer
        integration_id = integration.id if integration is not None else None

        recorded = await writer.record(organization_id, integration_id, events)
        if integration_id is not None:
            await writer.record_sync(
                integration_id, f"Received {len(recorded)} {provider.provider.value} event(s)"
            )

        # Redeliveries of events that never finished get another attempt
        to_process = [r.event.id for r in recorded if not r.event.is_processed]
        if to_process:
            context = EffectContext(
                organization_id=organization_id,
                integration_metadata=integration.metadata if integration is not None else {},
            )
            if provider.defer_processing:
                background_tasks.add_task(
                    writer.process_batch,
                    to_process,
                    integration_id,
                    context,
                    provider.apply_effects,
                )
            else:
                await writer.process_batch(
                    to_process, integration_id, context, provider.apply_effects
                )

        duplicates = sum(1 for r in recorded if not r.created)
        logger.info(
            f"Accepted {provider.provider.value} webhook",
            event_count=len(recorded),
            duplicates=duplicates,
            deferred=provider.defer_processing,
        )
        return WebhookResponse(
            success=True,
            message=f"Webhook accepted, {len(recorded)} event(s) recorded",
            organization_id=organization_id,
            event_ids=[str(r.event.id) for r in recorded],
            duplicates=duplicates,
        )


async def handle_github_webhook(
    request: Request, background_tasks: BackgroundTasks, repository_id: str
) -> WebhookResponse:
    """Handle a GitHub repository webhook addressed to a tracked repository."""
    provider = _provider(WebhookProvider.GITHUB)
    body = await request.body()
    headers = dict(request.headers)

    logger.info("Received github webhook", **payload_size_fields(body))

    try:
        _verify_and_raise(provider, headers, body)
        payload = parse_json_body(body)

        repositories: CodeRepositoriesRepository = request.app.state.code_repositories
        repository_uuid = parse_uuid(repository_id)
        repository = await repositories.get_by_id(repository_uuid) if repository_uuid else None
        if repository is None:
            logger.warning("GitHub webhook for unknown repository", repository_id=repository_id)
            raise RepositoryNotFoundError()

        # The route names the repository; the payload must agree with it
        payload_repository_id = (
            extract_github_repository_id(payload) if isinstance(payload, dict) else None
        )
        if payload_repository_id != repository.external_id:
            logger.warning(
                "GitHub payload repository does not match route",
                repository_id=repository_id,
                payload_repository_id=payload_repository_id,
            )
            raise RepositoryNotFoundError()

        integrations: IntegrationsRepository = request.app.state.integrations
        integration = await integrations.get_by_organization_and_tool(
            repository.organization_id, ToolName.GITHUB
        )
        if integration is not None and integration.is_disconnected:
            logger.warning(
                "GitHub webhook for disconnected integration",
                organization_id=repository.organization_id,
            )
            raise IntegrationNotFoundError()

        return await _ingest_verified_webhook(
            request,
            background_tasks,
            provider,
            repository.organization_id,
            integration,
            headers,
            body,
            payload,
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("github", e) from e


async def handle_slack_webhook(
    request: Request, background_tasks: BackgroundTasks, organization_id: str | None = None
) -> WebhookResponse | Response:
    """Handle a Slack Events API delivery.

    Without an organization in the path, the workspace team_id resolves the integration.
    """
    provider = _provider(WebhookProvider.SLACK)
    body = await request.body()
    body_str = body.decode("utf-8", errors="replace")
    headers = dict(request.headers)

    # Check for URL verification challenge first
    challenge = check_slack_url_verification(body_str)
    if challenge is not None:
        return PlainTextResponse(content=challenge)

    logger.info("Received slack webhook", **payload_size_fields(body))

    try:
        _verify_and_raise(provider, headers, body)
        payload = parse_json_body(body)
        if not isinstance(payload, dict):
            raise MalformedPayloadError("Slack payload must be a JSON object")

        if organization_id is not None:
            integration = await _resolve_integration(request, provider, organization_id)
        else:
            team_id = payload.get("team_id")
            if not team_id:
                raise WebhookBadRequestError("Missing team_id in Slack payload")
            integrations: IntegrationsRepository = request.app.state.integrations
            integration = await integrations.get_by_tool_and_external_account(
                ToolName.SLACK, team_id
            )
            if integration is None or integration.is_disconnected:
                logger.warning("Slack webhook received for unknown workspace", team_id=team_id)
                raise IntegrationNotFoundError()

        return await _ingest_verified_webhook(
            request,
            background_tasks,
            provider,
            integration.organization_id,
            integration,
            headers,
            body,
            payload,
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("slack", e) from e


async def handle_stripe_webhook(
    request: Request, background_tasks: BackgroundTasks, organization_id: str
) -> WebhookResponse:
    provider = _provider(WebhookProvider.STRIPE)
    body = await request.body()
    headers = dict(request.headers)

    logger.info("Received stripe webhook", **payload_size_fields(body))

    try:
        integration = await _resolve_integration(request, provider, organization_id)
        _verify_and_raise(provider, headers, body, integration)
        payload = parse_json_body(body)
        return await _ingest_verified_webhook(
            request, background_tasks, provider, organization_id, integration, headers, body, payload
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("stripe", e) from e


async def handle_asana_webhook(
    request: Request, background_tasks: BackgroundTasks, organization_id: str
) -> WebhookResponse | Response:
    provider = _provider(WebhookProvider.ASANA)
    headers = dict(request.headers)

    # Registration handshake: echo the secret, touch nothing
    if hook_secret := get_handshake_secret(headers):
        logger.info("Asana webhook handshake received", organization_id=organization_id)
        return Response(status_code=200, headers={"X-Hook-Secret": hook_secret})

    body = await request.body()
    logger.info("Received asana webhook", **payload_size_fields(body))

    try:
        integration = await _resolve_integration(request, provider, organization_id)
        _verify_and_raise(provider, headers, body, integration)
        payload = parse_json_body(body)
        return await _ingest_verified_webhook(
            request, background_tasks, provider, organization_id, integration, headers, body, payload
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("asana", e) from e


async def handle_posthog_webhook(
    request: Request, background_tasks: BackgroundTasks, organization_id: str
) -> WebhookResponse:
    provider = _provider(WebhookProvider.POSTHOG)
    body = await request.body()
    headers = dict(request.headers)
    query_params = dict(request.query_params)

    logger.info("Received posthog webhook", **payload_size_fields(body))

    try:
        integration = await _resolve_integration(request, provider, organization_id)
        _verify_and_raise(provider, headers, body, integration, query_params=query_params)
        payload = parse_json_body(body)
        return await _ingest_verified_webhook(
            request,
            background_tasks,
            provider,
            organization_id,
            integration,
            headers,
            body,
            payload,
            query_params,
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("posthog", e) from e


async def handle_trello_webhook(
    request: Request, background_tasks: BackgroundTasks, organization_id: str
) -> WebhookResponse | Response:
    provider = _provider(WebhookProvider.TRELLO)
    headers = dict(request.headers)

    if hook_secret := get_handshake_secret(headers):
        logger.info("Trello webhook handshake received", organization_id=organization_id)
        return Response(status_code=200, headers={"X-Hook-Secret": hook_secret})

    body = await request.body()
    logger.info("Received trello webhook", **payload_size_fields(body))

    try:
        integration = await _resolve_integration(request, provider, organization_id)
        _verify_and_raise(
            provider,
            headers,
            body,
            integration,
            request_url=get_trello_webhook_callback_url(organization_id),
        )
        payload = parse_json_body(body)
        return await _ingest_verified_webhook(
            request, background_tasks, provider, organization_id, integration, headers, body, payload
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("trello", e) from e


async def handle_jira_webhook(
    request: Request, background_tasks: BackgroundTasks, organization_id: str
) -> WebhookResponse:
    provider = _provider(WebhookProvider.JIRA)
    body = await request.body()
    headers = dict(request.headers)

    logger.info("Received jira webhook", **payload_size_fields(body))

    try:
        integration = await _resolve_integration(request, provider, organization_id)
        _verify_and_raise(provider, headers, body, integration)
        payload = parse_json_body(body)
        return await _ingest_verified_webhook(
            request, background_tasks, provider, organization_id, integration, headers, body, payload
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("jira", e) from e


async def handle_canny_webhook(
    request: Request, background_tasks: BackgroundTasks, organization_id: str
) -> WebhookResponse:
    provider = _provider(WebhookProvider.CANNY)
    body = await request.body()
    headers = dict(request.headers)

    logger.info("Received canny webhook", **payload_size_fields(body))

    try:
        integration = await _resolve_integration(request, provider, organization_id)
        _verify_and_raise(provider, headers, body, integration)
        payload = parse_json_body(body)
        return await _ingest_verified_webhook(
            request, background_tasks, provider, organization_id, integration, headers, body, payload
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("canny", e) from e
