"""Tests for the pending/failed event replay job."""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from src.cron.jobs.replay_pending_events import replay_events
from src.ingest.gatekeeper.provider_registry import get_provider
from src.ingest.gatekeeper.services.event_writer import ProcessingOutcome, ProcessingResult


def _event(source_tool: str = "stripe", integration_id=None):
    event = MagicMock()
    event.id = uuid4()
    event.organization_id = "org-1"
    event.source_tool = source_tool
    event.integration_id = integration_id
    return event


def _integration(disconnected: bool = False, metadata: dict | None = None):
    integration = MagicMock()
    integration.is_disconnected = disconnected
    integration.metadata = metadata or {}
    return integration


@pytest.fixture
def pool():
    pool = MagicMock()
    pool.acquire = MagicMock(return_value=AsyncMock(__aenter__=AsyncMock(return_value=AsyncMock())))
    return pool


@pytest.fixture
def writer():
    writer = MagicMock()
    writer.max_attempts = 3

    async def _process(event_id, integration_id, context, apply_effects):
        return ProcessingResult(event_id=event_id, outcome=ProcessingOutcome.PROCESSED)

    writer.process_and_reconcile = AsyncMock(side_effect=_process)
    return writer


@pytest.mark.asyncio
async def test_no_candidates(pool, writer):
    integrations = MagicMock()
    with patch(
        "src.cron.jobs.replay_pending_events.list_replayable_events",
        AsyncMock(return_value=[]),
    ) as list_events:
        outcomes = await replay_events(
            pool, writer, integrations, grace_seconds=60, batch_size=10
        )

    assert sum(outcomes.values()) == 0
    assert list_events.await_args.kwargs == {
        "older_than_seconds": 60,
        "max_attempts": 3,
        "limit": 10,
    }
    writer.process_and_reconcile.assert_not_awaited()


@pytest.mark.asyncio
async def test_replays_with_integration_context(pool, writer):
    integration_id = uuid4()
    events = [_event(integration_id=integration_id), _event(integration_id=integration_id)]
    integrations = MagicMock()
    integrations.get_by_id = AsyncMock(return_value=_integration(metadata={"team_id": "T1"}))

    with patch(
        "src.cron.jobs.replay_pending_events.list_replayable_events",
        AsyncMock(return_value=events),
    ):
        outcomes = await replay_events(pool, writer, integrations, grace_seconds=0, batch_size=5)

    assert outcomes["processed"] == 2
    # Integration is looked up once per pass
    integrations.get_by_id.assert_awaited_once_with(integration_id)

    event_id, passed_integration_id, context, apply_effects = (
        writer.process_and_reconcile.await_args_list[0].args
    )
    assert event_id == events[0].id
    assert passed_integration_id == integration_id
    assert context.organization_id == "org-1"
    assert context.integration_metadata == {"team_id": "T1"}
    assert apply_effects is get_provider("stripe").apply_effects


@pytest.mark.asyncio
async def test_skips_unknown_tool_and_disconnected_integration(pool, writer):
    disconnected_id = uuid4()
    events = [_event(source_tool="linear"), _event(integration_id=disconnected_id)]
    integrations = MagicMock()
    integrations.get_by_id = AsyncMock(return_value=_integration(disconnected=True))

    with patch(
        "src.cron.jobs.replay_pending_events.list_replayable_events",
        AsyncMock(return_value=events),
    ):
        outcomes = await replay_events(pool, writer, integrations, grace_seconds=0, batch_size=5)

    assert outcomes["skipped"] == 2
    writer.process_and_reconcile.assert_not_awaited()


@pytest.mark.asyncio
async def test_skips_deleted_integration(pool, writer):
    integrations = MagicMock()
    integrations.get_by_id = AsyncMock(return_value=None)

    with patch(
        "src.cron.jobs.replay_pending_events.list_replayable_events",
        AsyncMock(return_value=[_event(integration_id=uuid4())]),
    ):
        outcomes = await replay_events(pool, writer, integrations, grace_seconds=0, batch_size=5)

    assert outcomes == {"skipped": 1}


@pytest.mark.asyncio
async def test_counts_failures(pool, writer):
    writer.process_and_reconcile = AsyncMock(
        return_value=ProcessingResult(
            event_id=uuid4(), outcome=ProcessingOutcome.FAILED, attempts=3, error="boom"
        )
    )
    integrations = MagicMock()

    with patch(
        "src.cron.jobs.replay_pending_events.list_replayable_events",
        AsyncMock(return_value=[_event(source_tool="github")]),
    ):
        outcomes = await replay_events(pool, writer, integrations, grace_seconds=0, batch_size=5)

    assert outcomes["failed"] == 1
    context = writer.process_and_reconcile.await_args.args[2]
    assert context.integration_metadata == {}


@pytest.mark.asyncio
async def test_replays_events_of_errored_integration(pool, writer):
    integrations = MagicMock()
    errored = _integration()
    errored.status = "error"
    integrations.get_by_id = AsyncMock(return_value=errored)

    with patch(
        "src.cron.jobs.replay_pending_events.list_replayable_events",
        AsyncMock(return_value=[_event(integration_id=uuid4())]),
    ):
        outcomes = await replay_events(pool, writer, integrations, grace_seconds=0, batch_size=5)

    assert outcomes["processed"] == 1
