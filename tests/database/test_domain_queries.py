"""Tests for ordering guards and counters in domain row queries."""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from src.database.feeds import adjust_feed_counter, insert_feed_if_absent
from src.database.finance import upsert_subscription
from src.database.tasks import merge_task_attributes, upsert_task

ORG = "org-1"
NEWER = datetime(2024, 3, 2, tzinfo=UTC)


def _subscription_kwargs() -> dict:
    return {
        "customer_external_id": "cus_1",
        "status": "active",
        "amount_cents": 1000,
        "currency": "usd",
        "interval": "month",
        "current_period_end": None,
        "canceled_at": None,
        "provider_updated_at": NEWER,
    }


class TestUpsertSubscription:
    @pytest.mark.asyncio
    async def test_update_guarded_by_provider_time(self):
        conn = AsyncMock()
        conn.execute = AsyncMock(return_value="INSERT 0 1")

        assert await upsert_subscription(conn, ORG, "sub_1", **_subscription_kwargs()) is True

        query, *params = conn.execute.await_args.args
        assert "finance_subscriptions.provider_updated_at <= EXCLUDED.provider_updated_at" in query
        assert params[0] == ORG
        assert params[-1] == NEWER

    @pytest.mark.asyncio
    async def test_older_event_does_not_overwrite_newer_row(self):
        conn = AsyncMock()
        # The conflict WHERE clause rejected the update
        conn.execute = AsyncMock(return_value="INSERT 0 0")

        assert await upsert_subscription(conn, ORG, "sub_1", **_subscription_kwargs()) is False


class TestUpsertTask:
    @pytest.mark.asyncio
    async def test_returns_id(self):
        task_id = uuid4()
        conn = AsyncMock()
        conn.fetchval = AsyncMock(return_value=task_id)

        result = await upsert_task(
            conn,
            ORG,
            "jira",
            "10001",
            title="Fix login",
            status="todo",
            provider_updated_at=NEWER,
            attributes={"key": "ENG-1"},
        )

        assert result == task_id
        query, *params = conn.fetchval.await_args.args
        assert "tasks.provider_updated_at <= EXCLUDED.provider_updated_at" in query
        assert params[0] == ORG
        assert params[7] == NEWER
        assert json.loads(params[8]) == {"key": "ENG-1"}

    @pytest.mark.asyncio
    async def test_older_update_is_skipped(self):
        conn = AsyncMock()
        conn.fetchval = AsyncMock(return_value=None)

        result = await upsert_task(
            conn, ORG, "github", "7", title="Old title", status="todo", provider_updated_at=NEWER
        )

        assert result is None

    @pytest.mark.asyncio
    async def test_merge_attributes_unknown_task(self):
        conn = AsyncMock()
        conn.execute = AsyncMock(return_value="UPDATE 0")
        assert await merge_task_attributes(conn, ORG, "jira", "1", {"comment_count": 2}) is False
        assert json.loads(conn.execute.await_args.args[4]) == {"comment_count": 2}


class TestFeeds:
    @pytest.mark.asyncio
    async def test_insert_is_idempotent(self):
        conn = AsyncMock()
        conn.execute = AsyncMock(return_value="INSERT 0 0")
        inserted = await insert_feed_if_absent(
            conn, ORG, "canny", "p1", project_id=None, title="Dark mode", tags=["ui"]
        )
        assert inserted is False
        query, *params = conn.execute.await_args.args
        assert "ON CONFLICT (organization_id, source_tool, external_id) DO NOTHING" in query
        assert json.loads(params[12]) == ["ui"]

    @pytest.mark.asyncio
    async def test_counter_never_negative(self):
        conn = AsyncMock()
        conn.execute = AsyncMock(return_value="UPDATE 1")
        assert await adjust_feed_counter(conn, ORG, "canny", "p1", "score", -1) is True
        query, *params = conn.execute.await_args.args
        assert "score = GREATEST(score + $4, 0)" in query
        assert params == [ORG, "canny", "p1", -1]

    @pytest.mark.asyncio
    async def test_unknown_counter(self):
        with pytest.raises(ValueError, match="Unknown feed counter"):
            await adjust_feed_counter(AsyncMock(), ORG, "canny", "p1", "title", 1)
