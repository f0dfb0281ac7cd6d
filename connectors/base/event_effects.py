"""Shared types for provider side-effect appliers."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import asyncpg

from src.database.events import StoredEvent


@dataclass(frozen=True)
class EffectContext:
    """What an applier may rely on beyond the stored event itself.

    Appliers must scope every write to organization_id.
    """

    organization_id: str
    integration_metadata: dict = field(default_factory=dict)


# Runs inside the event's processing transaction; raising rolls back its writes
EffectFunc = Callable[[asyncpg.Connection, EffectContext, StoredEvent], Awaitable[None]]


class EntityNotFoundError(LookupError):
    """An event refers to a domain row that does not exist for the organization."""
