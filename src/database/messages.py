"""Slack-backed messages and the project channels they belong to."""

import json
from datetime import datetime
from uuid import UUID

import asyncpg


async def get_project_id_for_channel(
    conn: asyncpg.Connection, organization_id: str, channel_id: str
) -> UUID | None:
    """Project that registered this Slack channel, if any (archived projects excluded)."""
    return await conn.fetchval(
        """
        SELECT id FROM projects
        WHERE organization_id = $1 AND slack_channel_id = $2 AND archived_at IS NULL
        ORDER BY created_at
        LIMIT 1
        """,
        organization_id,
        channel_id,
    )


async def insert_message_if_absent(
    conn: asyncpg.Connection,
    organization_id: str,
    project_id: UUID,
    *,
    source_tool: str,
    external_id: str,
    channel_id: str,
    author_external_id: str | None,
    text: str,
    mentions: list[str],
    thread_external_id: str | None,
    sent_at: datetime,
) -> bool:
    result = await conn.execute(
        """
        INSERT INTO messages (
            organization_id, project_id, source_tool, external_id, channel_id,
            author_external_id, text, mentions, thread_external_id, sent_at
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
        ON CONFLICT (external_id, source_tool) DO NOTHING
        """,
        organization_id,
        project_id,
        source_tool,
        external_id,
        channel_id,
        author_external_id,
        text,
        json.dumps(mentions),
        thread_external_id,
        sent_at,
    )
    return result != "INSERT 0 0"


async def update_message_text(
    conn: asyncpg.Connection,
    organization_id: str,
    source_tool: str,
    external_id: str,
    text: str,
    mentions: list[str],
    edited_at: datetime,
) -> bool:
    """Apply an edit unless a later edit already landed."""
    result = await conn.execute(
        """
        UPDATE messages
        SET text = $4, mentions = $5, edited_at = $6
        WHERE organization_id = $1 AND source_tool = $2 AND external_id = $3
          AND (edited_at IS NULL OR edited_at <= $6)
        """,
        organization_id,
        source_tool,
        external_id,
        text,
        json.dumps(mentions),
        edited_at,
    )
    return result != "UPDATE 0"


async def mark_message_deleted(
    conn: asyncpg.Connection, organization_id: str, source_tool: str, external_id: str
) -> bool:
    result = await conn.execute(
        """
        UPDATE messages
        SET deleted_at = COALESCE(deleted_at, NOW())
        WHERE organization_id = $1 AND source_tool = $2 AND external_id = $3
        """,
        organization_id,
        source_tool,
        external_id,
    )
    return result != "UPDATE 0"


async def rename_channel(
    conn: asyncpg.Connection, organization_id: str, channel_id: str, channel_name: str
) -> int:
    result = await conn.execute(
        """
        UPDATE projects
        SET slack_channel_name = $3, updated_at = NOW()
        WHERE organization_id = $1 AND slack_channel_id = $2
        """,
        organization_id,
        channel_id,
        channel_name,
    )
    return int(result.split()[-1])


async def unlink_channel(conn: asyncpg.Connection, organization_id: str, channel_id: str) -> int:
    """Detach a deleted or archived channel from its projects. The projects themselves remain."""
    result = await conn.execute(
        """
        UPDATE projects
        SET slack_channel_id = NULL, slack_channel_name = NULL, updated_at = NOW()
        WHERE organization_id = $1 AND slack_channel_id = $2
        """,
        organization_id,
        channel_id,
    )
    return int(result.split()[-1])
