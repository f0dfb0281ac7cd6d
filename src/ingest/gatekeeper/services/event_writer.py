"""Idempotent event writer.

Recording and processing are separate steps so a delivery can be acknowledged as
soon as its events are durable:

1. record(): INSERT ... ON CONFLICT DO NOTHING, one row per (external_id, source_tool)
2. process(): lock the row, skip it if already processed, apply side effects and
   mark it processed, all in one transaction

A failing side effect rolls back its own writes; the failure is then stored on the
event row by a separate statement and the event stays eligible for replay.
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

import asyncpg
import newrelic.agent

from connectors.base.canonical_event import CanonicalEvent
from connectors.base.event_effects import EffectContext, EffectFunc
from src.database.events import (
    StoredEvent,
    insert_event,
    lock_event,
    mark_event_failed,
    mark_event_processed,
)
from src.database.integrations import IntegrationsRepository
from src.utils.config import get_event_max_attempts
from src.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


@dataclass
class RecordedEvent:
    event: StoredEvent
    created: bool


class ProcessingOutcome(str, Enum):
    PROCESSED = "processed"
    ALREADY_PROCESSED = "already_processed"
    FAILED = "failed"
    MISSING = "missing"


@dataclass
class ProcessingResult:
    event_id: UUID
    outcome: ProcessingOutcome
    attempts: int = 0
    error: str | None = None


class EventWriter:
    """Writes canonical events and runs their side effects exactly once."""

    def __init__(
        self,
        pool: asyncpg.Pool,
        integrations: IntegrationsRepository,
        max_attempts: int | None = None,
    ):
        self.pool = pool
        self.integrations = integrations
        self.max_attempts = max_attempts if max_attempts is not None else get_event_max_attempts()

    async def record(
        self,
        organization_id: str,
        integration_id: UUID | None,
        events: list[CanonicalEvent],
    ) -> list[RecordedEvent]:
        """Durably store events; redeliveries return the existing rows with created=False."""
        recorded: list[RecordedEvent] = []
        async with self.pool.acquire() as conn:
            for event in events:
                result = await insert_event(conn, organization_id, integration_id, event)
                recorded.append(RecordedEvent(event=result.event, created=result.created))
                if not result.created:
                    logger.info(
                        "Duplicate event delivery",
                        source_tool=event.source_tool,
                        external_id=event.external_id,
                        status=result.event.status,
                    )
        return recorded

    async def process(
        self,
        event_id: UUID,
        context: EffectContext,
        apply_effects: EffectFunc | None,
    ) -> ProcessingResult:
        """Apply an event's side effects at most once.

        Concurrent processors of the same event serialize on the row lock; the
        loser sees status=processed and returns without touching anything.
        """
        async with self.pool.acquire() as conn:
            try:
                async with conn.transaction():
                    stored = await lock_event(conn, event_id)
                    if stored is None:
                        logger.warning("Event to process not found", event_id=str(event_id))
                        return ProcessingResult(event_id, ProcessingOutcome.MISSING)
                    if stored.is_processed:
                        return ProcessingResult(
                            event_id, ProcessingOutcome.ALREADY_PROCESSED, stored.attempts
                        )
                    if apply_effects is not None:
                        await apply_effects(conn, context, stored)
                    await mark_event_processed(conn, event_id)
                return ProcessingResult(event_id, ProcessingOutcome.PROCESSED, stored.attempts + 1)
            except Exception as e:
                newrelic.agent.record_exception()
                logger.error(
                    f"Event side effects failed: {e}",
                    event_id=str(event_id),
                    error_type=type(e).__name__,
                )
                attempts = await mark_event_failed(
                    conn, event_id, {"error": str(e), "type": type(e).__name__}
                )
                return ProcessingResult(event_id, ProcessingOutcome.FAILED, attempts, str(e))

    async def process_and_reconcile(
        self,
        event_id: UUID,
        integration_id: UUID | None,
        context: EffectContext,
        apply_effects: EffectFunc | None,
    ) -> ProcessingResult:
        """Process an event; one that has used up its attempts puts the integration into error.

        Activation is left to connect and sync flows.
        """
        with LogContext(organization_id=context.organization_id, event_id=str(event_id)):
            result = await self.process(event_id, context, apply_effects)
            if integration_id is None:
                return result

            if result.outcome is ProcessingOutcome.FAILED and result.attempts >= self.max_attempts:
                await self.integrations.mark_error(
                    integration_id,
                    f"Event {event_id} failed after {result.attempts} attempts: {result.error}",
                )
            return result

    async def process_batch(
        self,
        event_ids: list[UUID],
        integration_id: UUID | None,
        context: EffectContext,
        apply_effects: EffectFunc | None,
    ) -> list[ProcessingResult]:
        """Process events one after another in delivery order."""
        results = []
        for event_id in event_ids:
            results.append(
                await self.process_and_reconcile(event_id, integration_id, context, apply_effects)
            )
        return results

    async def record_sync(self, integration_id: UUID, sync_status: str) -> None:
        """Stamp last_sync_at. Runs after events are committed and never undoes them."""
        try:
            await self.integrations.record_sync(integration_id, sync_status)
        except Exception as e:
            logger.warning(f"Failed to record integration sync: {e}", integration_id=str(integration_id))
