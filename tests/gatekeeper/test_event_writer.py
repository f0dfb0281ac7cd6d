"""Tests for EventWriter recording, at-most-once processing and integration reconciliation."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from connectors.base.canonical_event import CanonicalEvent, EventCategory
from connectors.base.event_effects import EffectContext
from src.database.events import InsertResult, StoredEvent
from src.ingest.gatekeeper.services.event_writer import (
    EventWriter,
    ProcessingOutcome,
    ProcessingResult,
)

WRITER_MODULE = "src.ingest.gatekeeper.services.event_writer"
ORG = "org-1"
CONTEXT = EffectContext(organization_id=ORG)


def _stored(status: str = "pending", attempts: int = 0) -> StoredEvent:
    now = datetime(2024, 1, 1, tzinfo=UTC)
    return StoredEvent(
        {
            "id": uuid4(),
            "organization_id": ORG,
            "integration_id": uuid4(),
            "external_id": "evt_1",
            "source_tool": "stripe",
            "type": "invoice.paid",
            "category": "invoice",
            "status": status,
            "raw_data": {},
            "error": None,
            "attempts": attempts,
            "occurred_at": now,
            "created_at": now,
            "processed_at": None,
        }
    )


@pytest.fixture
def mock_conn():
    conn = MagicMock()
    conn.transaction = MagicMock(return_value=AsyncMock())
    return conn


@pytest.fixture
def mock_pool(mock_conn):
    pool = MagicMock()
    pool.acquire = MagicMock(return_value=AsyncMock(__aenter__=AsyncMock(return_value=mock_conn)))
    return pool


@pytest.fixture
def integrations():
    repo = MagicMock()
    repo.update_status = AsyncMock()
    repo.mark_error = AsyncMock()
    repo.record_sync = AsyncMock()
    return repo


@pytest.fixture
def writer(mock_pool, integrations):
    return EventWriter(mock_pool, integrations, max_attempts=3)


class TestRecord:
    @pytest.mark.asyncio
    async def test_new_and_duplicate_events(self, writer, mock_conn):
        fresh, existing = _stored(), _stored(status="processed")
        events = [
            CanonicalEvent(
                external_id=f"evt_{i}",
                source_tool="stripe",
                type="invoice.paid",
                category=EventCategory.INVOICE,
                occurred_at=datetime(2024, 1, 1, tzinfo=UTC),
                raw_data={},
            )
            for i in range(2)
        ]
        integration_id = uuid4()
        with patch(
            f"{WRITER_MODULE}.insert_event",
            new_callable=AsyncMock,
            side_effect=[InsertResult(fresh, True), InsertResult(existing, False)],
        ) as mock_insert:
            recorded = await writer.record(ORG, integration_id, events)

        assert [r.created for r in recorded] == [True, False]
        assert recorded[1].event is existing
        assert mock_insert.await_args_list[0].args == (mock_conn, ORG, integration_id, events[0])


class TestProcess:
    @pytest.mark.asyncio
    async def test_applies_effects_then_marks_processed(self, writer, mock_conn):
        stored = _stored()
        apply_effects = AsyncMock()
        with (
            patch(f"{WRITER_MODULE}.lock_event", new_callable=AsyncMock, return_value=stored),
            patch(f"{WRITER_MODULE}.mark_event_processed", new_callable=AsyncMock) as mock_processed,
        ):
            result = await writer.process(stored.id, CONTEXT, apply_effects)

        assert result.outcome is ProcessingOutcome.PROCESSED
        assert result.attempts == 1
        apply_effects.assert_awaited_once_with(mock_conn, CONTEXT, stored)
        mock_processed.assert_awaited_once_with(mock_conn, stored.id)

    @pytest.mark.asyncio
    async def test_already_processed_is_skipped(self, writer):
        stored = _stored(status="processed", attempts=1)
        apply_effects = AsyncMock()
        with (
            patch(f"{WRITER_MODULE}.lock_event", new_callable=AsyncMock, return_value=stored),
            patch(f"{WRITER_MODULE}.mark_event_processed", new_callable=AsyncMock) as mock_processed,
        ):
            result = await writer.process(stored.id, CONTEXT, apply_effects)

        assert result.outcome is ProcessingOutcome.ALREADY_PROCESSED
        apply_effects.assert_not_awaited()
        mock_processed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_event(self, writer):
        with patch(f"{WRITER_MODULE}.lock_event", new_callable=AsyncMock, return_value=None):
            result = await writer.process(uuid4(), CONTEXT, AsyncMock())
        assert result.outcome is ProcessingOutcome.MISSING

    @pytest.mark.asyncio
    async def test_event_without_effects_is_still_marked(self, writer):
        stored = _stored()
        with (
            patch(f"{WRITER_MODULE}.lock_event", new_callable=AsyncMock, return_value=stored),
            patch(f"{WRITER_MODULE}.mark_event_processed", new_callable=AsyncMock) as mock_processed,
        ):
            result = await writer.process(stored.id, CONTEXT, None)

        assert result.outcome is ProcessingOutcome.PROCESSED
        mock_processed.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_is_recorded_not_raised(self, writer, mock_conn):
        stored = _stored()
        apply_effects = AsyncMock(side_effect=LookupError("task missing"))
        with (
            patch(f"{WRITER_MODULE}.lock_event", new_callable=AsyncMock, return_value=stored),
            patch(f"{WRITER_MODULE}.mark_event_processed", new_callable=AsyncMock) as mock_processed,
            patch(
                f"{WRITER_MODULE}.mark_event_failed", new_callable=AsyncMock, return_value=2
            ) as mock_failed,
        ):
            result = await writer.process(stored.id, CONTEXT, apply_effects)

        assert result.outcome is ProcessingOutcome.FAILED
        assert result.attempts == 2
        assert result.error == "task missing"
        mock_processed.assert_not_awaited()
        mock_failed.assert_awaited_once_with(
            mock_conn, stored.id, {"error": "task missing", "type": "LookupError"}
        )


class TestProcessAndReconcile:
    @pytest.mark.asyncio
    async def test_success_leaves_integration_status(self, writer, integrations):
        integration_id = uuid4()
        event_id = uuid4()
        with patch.object(
            writer,
            "process",
            new_callable=AsyncMock,
            return_value=ProcessingResult(event_id, ProcessingOutcome.PROCESSED, 1),
        ):
            await writer.process_and_reconcile(event_id, integration_id, CONTEXT, None)

        integrations.update_status.assert_not_awaited()
        integrations.mark_error.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_below_limit_leaves_status(self, writer, integrations):
        event_id = uuid4()
        with patch.object(
            writer,
            "process",
            new_callable=AsyncMock,
            return_value=ProcessingResult(event_id, ProcessingOutcome.FAILED, 2, "boom"),
        ):
            await writer.process_and_reconcile(event_id, uuid4(), CONTEXT, None)

        integrations.mark_error.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exhausted_attempts_mark_integration_error(self, writer, integrations):
        integration_id = uuid4()
        event_id = uuid4()
        with patch.object(
            writer,
            "process",
            new_callable=AsyncMock,
            return_value=ProcessingResult(event_id, ProcessingOutcome.FAILED, 3, "boom"),
        ):
            await writer.process_and_reconcile(event_id, integration_id, CONTEXT, None)

        integration_arg, status_text = integrations.mark_error.await_args.args
        assert integration_arg == integration_id
        assert "boom" in status_text

    @pytest.mark.asyncio
    async def test_no_integration(self, writer, integrations):
        event_id = uuid4()
        with patch.object(
            writer,
            "process",
            new_callable=AsyncMock,
            return_value=ProcessingResult(event_id, ProcessingOutcome.FAILED, 3, "boom"),
        ):
            await writer.process_and_reconcile(event_id, None, CONTEXT, None)
        integrations.mark_error.assert_not_awaited()


@pytest.mark.asyncio
async def test_process_batch_keeps_order(writer):
    ids = [uuid4(), uuid4(), uuid4()]
    with patch.object(
        writer,
        "process_and_reconcile",
        new_callable=AsyncMock,
        side_effect=lambda event_id, *args: ProcessingResult(event_id, ProcessingOutcome.PROCESSED),
    ):
        results = await writer.process_batch(ids, None, CONTEXT, None)
    assert [r.event_id for r in results] == ids


@pytest.mark.asyncio
async def test_record_sync_failure_is_swallowed(writer, integrations):
    integrations.record_sync = AsyncMock(side_effect=RuntimeError("db down"))
    await writer.record_sync(uuid4(), "Received 1 stripe event(s)")


def test_max_attempts_from_config(monkeypatch, mock_pool, integrations):
    monkeypatch.setenv("EVENT_MAX_ATTEMPTS", "5")
    assert EventWriter(mock_pool, integrations).max_attempts == 5
