"""Feedback feed rows (Canny posts) mutated by Canny post, comment and vote events.

Every statement is scoped by organization_id and source_tool.
"""

import json
from uuid import UUID

import asyncpg

# Counters adjustable by comment and vote events
_COUNTER_COLUMNS = frozenset({"score", "comments_count"})


async def insert_feed_if_absent(
    conn: asyncpg.Connection,
    organization_id: str,
    source_tool: str,
    external_id: str,
    *,
    project_id: UUID | None,
    title: str,
    description: str | None = None,
    author: str | None = None,
    author_id: str | None = None,
    owner: str | None = None,
    owner_id: str | None = None,
    category: str | None = None,
    url: str | None = None,
    tags: list[str] | None = None,
    score: int = 0,
    comments_count: int = 0,
    status: str | None = None,
) -> bool:
    """Insert a feed item once. Returns False when it already exists."""
    result = await conn.execute(
        """
        INSERT INTO feeds (
            organization_id, source_tool, external_id, project_id, title, description,
            author, author_id, owner, owner_id, category, url, tags, score,
            comments_count, status
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16)
        ON CONFLICT (organization_id, source_tool, external_id) DO NOTHING
        """,
        organization_id,
        source_tool,
        external_id,
        project_id,
        title,
        description,
        author,
        author_id,
        owner,
        owner_id,
        category,
        url,
        json.dumps(tags or []),
        score,
        comments_count,
        status,
    )
    return result != "INSERT 0 0"


async def mark_feed_deleted(
    conn: asyncpg.Connection, organization_id: str, source_tool: str, external_id: str
) -> bool:
    result = await conn.execute(
        """
        UPDATE feeds
        SET deleted_at = COALESCE(deleted_at, NOW()), updated_at = NOW()
        WHERE organization_id = $1 AND source_tool = $2 AND external_id = $3
        """,
        organization_id,
        source_tool,
        external_id,
    )
    return result != "UPDATE 0"


async def update_feed_status(
    conn: asyncpg.Connection,
    organization_id: str,
    source_tool: str,
    external_id: str,
    status: str,
) -> bool:
    result = await conn.execute(
        """
        UPDATE feeds
        SET status = $4, updated_at = NOW()
        WHERE organization_id = $1 AND source_tool = $2 AND external_id = $3
          AND deleted_at IS NULL
        """,
        organization_id,
        source_tool,
        external_id,
        status,
    )
    return result != "UPDATE 0"


async def merge_feed_attributes(
    conn: asyncpg.Connection,
    organization_id: str,
    source_tool: str,
    external_id: str,
    attributes: dict,
) -> bool:
    result = await conn.execute(
        """
        UPDATE feeds
        SET attributes = attributes || $4::jsonb, updated_at = NOW()
        WHERE organization_id = $1 AND source_tool = $2 AND external_id = $3
          AND deleted_at IS NULL
        """,
        organization_id,
        source_tool,
        external_id,
        json.dumps(attributes),
    )
    return result != "UPDATE 0"


async def adjust_feed_counter(
    conn: asyncpg.Connection,
    organization_id: str,
    source_tool: str,
    external_id: str,
    column: str,
    delta: int,
) -> bool:
    """Add delta to score or comments_count, never going below zero.

    Returns False if the feed item is unknown.
    """
    if column not in _COUNTER_COLUMNS:
        raise ValueError(f"Unknown feed counter: {column}")
    result = await conn.execute(
        f"""
        UPDATE feeds
        SET {column} = GREATEST({column} + $4, 0), updated_at = NOW()
        WHERE organization_id = $1 AND source_tool = $2 AND external_id = $3
          AND deleted_at IS NULL
        """,
        organization_id,
        source_tool,
        external_id,
        delta,
    )
    return result != "UPDATE 0"
