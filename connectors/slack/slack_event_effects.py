"""Apply Slack events to project messages and channel links."""

from datetime import UTC, datetime

import asyncpg

from connectors.base.event_effects import EffectContext
from connectors.base.utils import parse_provider_timestamp
from connectors.slack.slack_webhook_normalizer import (
    parse_slack_mentions,
    slack_channel_id,
    slack_event_type,
)
from src.database import messages
from src.database.events import StoredEvent
from src.utils.logging import get_logger

logger = get_logger(__name__)

_CHANNEL_RENAME_TYPES = {"channel_rename", "group_rename"}
_CHANNEL_GONE_TYPES = {
    "channel_deleted",
    "channel_archive",
    "channel_left",
    "group_deleted",
    "group_archive",
    "group_left",
}


def slack_message_external_id(channel_id: str, ts: str) -> str:
    # ts is only unique within a channel
    return f"{channel_id}:{ts}"


async def _store_new_message(
    conn: asyncpg.Connection, context: EffectContext, inner_event: dict, channel_id: str
) -> None:
    project_id = await messages.get_project_id_for_channel(
        conn, context.organization_id, channel_id
    )
    if project_id is None:
        logger.info("Slack channel not linked to a project; message not stored", channel_id=channel_id)
        return

    ts = inner_event["ts"]
    thread_ts = inner_event.get("thread_ts")
    await messages.insert_message_if_absent(
        conn,
        context.organization_id,
        project_id,
        source_tool="slack",
        external_id=slack_message_external_id(channel_id, ts),
        channel_id=channel_id,
        author_external_id=inner_event.get("user"),
        text=inner_event.get("text") or "",
        mentions=parse_slack_mentions(inner_event.get("text")),
        thread_external_id=slack_message_external_id(channel_id, thread_ts)
        if thread_ts and thread_ts != ts
        else None,
        sent_at=parse_provider_timestamp(ts, default=datetime.now(UTC)),
    )


async def _apply_message_changed(
    conn: asyncpg.Connection, context: EffectContext, inner_event: dict, channel_id: str
) -> None:
    message = inner_event.get("message") or {}
    edited = message.get("edited") or {}
    await messages.update_message_text(
        conn,
        context.organization_id,
        "slack",
        slack_message_external_id(channel_id, message["ts"]),
        message.get("text") or "",
        parse_slack_mentions(message.get("text")),
        parse_provider_timestamp(
            edited.get("ts") or inner_event.get("event_ts"), default=datetime.now(UTC)
        ),
    )


async def _apply_message_deleted(
    conn: asyncpg.Connection, context: EffectContext, inner_event: dict, channel_id: str
) -> None:
    deleted_ts = inner_event.get("deleted_ts") or (inner_event.get("previous_message") or {}).get(
        "ts"
    )
    if not deleted_ts:
        return
    await messages.mark_message_deleted(
        conn, context.organization_id, "slack", slack_message_external_id(channel_id, deleted_ts)
    )


async def apply_slack_event_effects(
    conn: asyncpg.Connection, context: EffectContext, event: StoredEvent
) -> None:
    """Apply a stored Slack event_callback.

    Messages are only kept for channels an organization linked to a project.
    """
    inner_event = event.raw_data.get("event") or {}
    channel_id = slack_channel_id(inner_event)
    if channel_id is None:
        return

    event_type = slack_event_type(inner_event)
    if event_type in ("message", "app_mention", "message.thread_broadcast"):
        await _store_new_message(conn, context, inner_event, channel_id)
    elif event_type == "message.message_changed":
        await _apply_message_changed(conn, context, inner_event, channel_id)
    elif event_type == "message.message_deleted":
        await _apply_message_deleted(conn, context, inner_event, channel_id)
    elif event_type in _CHANNEL_RENAME_TYPES:
        name = (inner_event.get("channel") or {}).get("name")
        if name:
            await messages.rename_channel(conn, context.organization_id, channel_id, name)
    elif event_type in _CHANNEL_GONE_TYPES:
        unlinked = await messages.unlink_channel(conn, context.organization_id, channel_id)
        logger.info("Slack channel unlinked", channel_id=channel_id, projects=unlinked)
