"""Replay events whose side effects never completed.

Deliveries are acknowledged once their events are stored, so a crash or a failing
side effect leaves rows in pending/failed. This job retries them until they succeed
or run out of attempts, at which point the owning integration is put into error.
"""

from collections import Counter
from uuid import UUID

import asyncpg

from connectors.base.event_effects import EffectContext
from src.clients.database import db_manager
from src.cron import cron
from src.database.events import list_replayable_events
from src.database.integrations import Integration, IntegrationsRepository
from src.ingest.gatekeeper.provider_registry import get_provider
from src.ingest.gatekeeper.services.event_writer import EventWriter, ProcessingOutcome
from src.utils.config import get_event_replay_batch_size, get_event_replay_grace_seconds
from src.utils.logging import get_logger

logger = get_logger(__name__)


async def replay_events(
    pool: asyncpg.Pool,
    writer: EventWriter,
    integrations: IntegrationsRepository,
    *,
    grace_seconds: int | None = None,
    batch_size: int | None = None,
) -> Counter:
    """Run one replay pass. Returns a count of outcomes keyed by ProcessingOutcome value."""
    async with pool.acquire() as conn:
        events = await list_replayable_events(
            conn,
            older_than_seconds=grace_seconds
            if grace_seconds is not None
            else get_event_replay_grace_seconds(),
            max_attempts=writer.max_attempts,
            limit=batch_size if batch_size is not None else get_event_replay_batch_size(),
        )

    outcomes: Counter = Counter()
    if not events:
        return outcomes

    integration_cache: dict[UUID, Integration | None] = {}
    for event in events:
        provider = get_provider(event.source_tool)
        if provider is None:
            logger.warning(
                "Skipping replay for unknown source tool",
                event_id=str(event.id),
                source_tool=event.source_tool,
            )
            outcomes["skipped"] += 1
            continue

        integration = None
        if event.integration_id is not None:
            if event.integration_id not in integration_cache:
                integration_cache[event.integration_id] = await integrations.get_by_id(
                    event.integration_id
                )
            integration = integration_cache[event.integration_id]
            if integration is None or integration.is_disconnected:
                outcomes["skipped"] += 1
                continue

        context = EffectContext(
            organization_id=event.organization_id,
            integration_metadata=integration.metadata if integration else {},
        )
        result = await writer.process_and_reconcile(
            event.id, event.integration_id, context, provider.apply_effects
        )
        outcomes[result.outcome.value] += 1

    logger.info(
        "Event replay pass finished",
        candidates=len(events),
        processed=outcomes[ProcessingOutcome.PROCESSED.value],
        failed=outcomes[ProcessingOutcome.FAILED.value],
        skipped=outcomes["skipped"],
    )
    return outcomes


@cron(id="replay_pending_events", crontab="*/5 * * * *", tags=["events"])
async def replay_pending_events() -> None:
    pool = await db_manager.get_pool()
    integrations = IntegrationsRepository(pool)
    await replay_events(pool, EventWriter(pool, integrations), integrations)
