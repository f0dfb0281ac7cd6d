"""Route definitions for gatekeeper service."""

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, Response

from src.ingest.gatekeeper.models import EndpointProbeResponse, WebhookResponse
from src.ingest.gatekeeper.provider_registry import get_provider
from src.ingest.gatekeeper.webhook_handlers import (
    handle_asana_webhook,
    handle_canny_webhook,
    handle_github_webhook,
    handle_jira_webhook,
    handle_posthog_webhook,
    handle_slack_webhook,
    handle_stripe_webhook,
    handle_trello_webhook,
)
from src.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.post("/webhooks/github/{repository_id}", response_model=WebhookResponse)
async def github_webhook(request: Request, background_tasks: BackgroundTasks, repository_id: str):
    """Process GitHub webhook for a tracked repository."""
    with LogContext(repository_id=repository_id):
        return await handle_github_webhook(request, background_tasks, repository_id)


@router.post("/webhooks/slack", response_model=WebhookResponse)
async def slack_webhook(request: Request, background_tasks: BackgroundTasks):
    """Process Slack webhook for the app shared across workspaces (team_id lookup)."""
    return await handle_slack_webhook(request, background_tasks)


@router.post("/webhooks/slack/{organization_id}", response_model=WebhookResponse)
async def slack_webhook_with_organization(
    request: Request, background_tasks: BackgroundTasks, organization_id: str
):
    with LogContext(organization_id=organization_id):
        return await handle_slack_webhook(request, background_tasks, organization_id)


@router.post("/webhooks/stripe/{organization_id}", response_model=WebhookResponse)
async def stripe_webhook(request: Request, background_tasks: BackgroundTasks, organization_id: str):
    with LogContext(organization_id=organization_id):
        return await handle_stripe_webhook(request, background_tasks, organization_id)


@router.post("/webhooks/asana/{organization_id}", response_model=WebhookResponse)
async def asana_webhook(request: Request, background_tasks: BackgroundTasks, organization_id: str):
    with LogContext(organization_id=organization_id):
        return await handle_asana_webhook(request, background_tasks, organization_id)


@router.post("/webhooks/posthog/{organization_id}", response_model=WebhookResponse)
async def posthog_webhook(
    request: Request, background_tasks: BackgroundTasks, organization_id: str
):
    with LogContext(organization_id=organization_id):
        return await handle_posthog_webhook(request, background_tasks, organization_id)


@router.head("/webhooks/trello/{organization_id}")
async def trello_webhook_verify(organization_id: str):
    """Verify Trello webhook URL (HEAD request for webhook registration)."""
    # Trello sends HEAD request to verify webhook URL is reachable
    return Response(status_code=200)


@router.post("/webhooks/trello/{organization_id}", response_model=WebhookResponse)
async def trello_webhook(request: Request, background_tasks: BackgroundTasks, organization_id: str):
    with LogContext(organization_id=organization_id):
        return await handle_trello_webhook(request, background_tasks, organization_id)


@router.post("/webhooks/jira/{organization_id}", response_model=WebhookResponse)
async def jira_webhook(request: Request, background_tasks: BackgroundTasks, organization_id: str):
    with LogContext(organization_id=organization_id):
        return await handle_jira_webhook(request, background_tasks, organization_id)


@router.post("/webhooks/canny/{organization_id}", response_model=WebhookResponse)
async def canny_webhook(request: Request, background_tasks: BackgroundTasks, organization_id: str):
    with LogContext(organization_id=organization_id):
        return await handle_canny_webhook(request, background_tasks, organization_id)


@router.get("/webhooks/{provider}/{organization_id}", response_model=EndpointProbeResponse)
async def webhook_endpoint_probe(provider: str, organization_id: str):
    """Answer GET probes so providers can check the endpoint before registering it."""
    spec = get_provider(provider)
    if spec is None:
        raise HTTPException(status_code=404, detail="Unknown webhook provider")
    return EndpointProbeResponse(
        status="ok",
        message=f"{spec.display_name} webhook endpoint",
        organization_id=organization_id,
    )
