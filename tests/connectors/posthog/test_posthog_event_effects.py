from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from connectors.base.event_effects import EffectContext
from connectors.posthog import apply_posthog_event_effects
from src.database.events import StoredEvent

ORG = "org-1"
OCCURRED_AT = datetime(2024, 1, 15, 10, 30, tzinfo=UTC)


def _event() -> StoredEvent:
    return StoredEvent(
        {
            "id": uuid4(),
            "organization_id": ORG,
            "integration_id": uuid4(),
            "external_id": "0190-abcd",
            "source_tool": "posthog",
            "type": "$pageview",
            "category": "analytics",
            "status": "pending",
            "raw_data": {"event": "$pageview", "distinct_id": "user-1", "properties": {}},
            "error": None,
            "attempts": 0,
            "occurred_at": OCCURRED_AT,
            "created_at": OCCURRED_AT,
            "processed_at": None,
        }
    )


@pytest.mark.asyncio
async def test_event_linked_to_known_project():
    conn = AsyncMock()
    project_id = uuid4()
    context = EffectContext(organization_id=ORG, integration_metadata={"projectId": 4242})
    with (
        patch(
            "src.database.tasks.get_external_project_id",
            new_callable=AsyncMock,
            return_value=project_id,
        ) as mock_project,
        patch(
            "connectors.posthog.posthog_event_effects.insert_analytics_event_if_absent",
            new_callable=AsyncMock,
            return_value=True,
        ) as mock_insert,
    ):
        await apply_posthog_event_effects(conn, context, _event())

    mock_project.assert_awaited_once_with(conn, ORG, "posthog", "4242")
    args, kwargs = mock_insert.await_args
    assert args == (conn, ORG, project_id)
    assert kwargs["external_id"] == "0190-abcd"
    assert kwargs["event_type"] == "$pageview"
    assert kwargs["distinct_id"] == "user-1"
    assert kwargs["occurred_at"] == OCCURRED_AT


@pytest.mark.asyncio
async def test_event_without_project_metadata():
    conn = AsyncMock()
    with (
        patch("src.database.tasks.get_external_project_id", new_callable=AsyncMock) as mock_project,
        patch(
            "connectors.posthog.posthog_event_effects.insert_analytics_event_if_absent",
            new_callable=AsyncMock,
            return_value=False,
        ) as mock_insert,
    ):
        await apply_posthog_event_effects(conn, EffectContext(organization_id=ORG), _event())

    mock_project.assert_not_awaited()
    assert mock_insert.await_args.args == (conn, ORG, None)
