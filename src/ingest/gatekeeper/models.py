"""Pydantic models for gatekeeper service."""

from pydantic import BaseModel, Field


class WebhookResponse(BaseModel):
    """Webhook response model."""

    success: bool
    message: str
    organization_id: str | None = None
    event_ids: list[str] = Field(default_factory=list)
    duplicates: int = 0


class EndpointProbeResponse(BaseModel):
    """Answer to GET probes some providers send before registering a webhook."""

    status: str
    message: str
    organization_id: str
