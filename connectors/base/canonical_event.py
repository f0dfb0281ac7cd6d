"""Provider-neutral event model produced by every webhook normalizer."""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventCategory(str, Enum):
    """Derived taxonomy shared across providers."""

    CODE = "code"
    COMMUNICATION = "communication"
    SUBSCRIPTION = "subscription"
    CUSTOMER = "customer"
    INVOICE = "invoice"
    CHARGE = "charge"
    PAYMENT = "payment"
    BALANCE = "balance"
    TASK = "task"
    ANALYTICS = "analytics"
    FEEDBACK = "feedback"
    OTHER = "other"


class EntityReference(BaseModel):
    """Pointer to the provider entity an event is about (repository, channel, task...)."""

    entity_type: str
    external_id: str


class CanonicalEvent(BaseModel):
    """One externally sourced occurrence, ready for the idempotent writer.

    (external_id, source_tool) is the idempotency key. raw_data holds everything
    side-effect processing needs so a failed event can be replayed from the row alone.
    """

    external_id: str
    source_tool: str
    type: str
    category: EventCategory
    occurred_at: datetime
    raw_data: dict[str, Any]
    entity: EntityReference | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True)
class WebhookDelivery:
    """A verified inbound request: exact body bytes, lower-cased headers and parsed JSON."""

    headers: dict[str, str]
    body: bytes
    payload: Any
    query_params: dict[str, str] = field(default_factory=dict)

    @property
    def body_digest(self) -> str:
        """Stable fallback id for providers that do not assign one to every delivery."""
        return hashlib.sha256(self.body).hexdigest()


class PayloadError(ValueError):
    """The payload parsed as JSON but lacks fields the normalizer requires."""
