"""Append-only canonical event log.

Rows are unique on (external_id, source_tool). Only the processing bookkeeping
columns (status, error, attempts, processed_at) ever change after insert.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

import asyncpg

from connectors.base.canonical_event import CanonicalEvent


class EventStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


_COLUMNS = """
    id, organization_id, integration_id, external_id, source_tool, type, category,
    status, raw_data, error, attempts, occurred_at, created_at, processed_at
"""
_JOINED_COLUMNS = ", ".join("e." + column.strip() for column in _COLUMNS.split(","))


class StoredEvent:
    """Event row as persisted."""

    def __init__(self, row: asyncpg.Record):
        self.id: UUID = row["id"]
        self.organization_id: str = row["organization_id"]
        self.integration_id: UUID | None = row["integration_id"]
        self.external_id: str = row["external_id"]
        self.source_tool: str = row["source_tool"]
        self.type: str = row["type"]
        self.category: str = row["category"]
        self.status: str = row["status"]
        self.raw_data: dict = row["raw_data"] or {}
        self.error: dict | None = row["error"]
        self.attempts: int = row["attempts"]
        self.occurred_at: datetime = row["occurred_at"]
        self.created_at: datetime = row["created_at"]
        self.processed_at: datetime | None = row["processed_at"]

    @property
    def is_processed(self) -> bool:
        return self.status == EventStatus.PROCESSED.value


@dataclass
class InsertResult:
    event: StoredEvent
    created: bool


async def insert_event(
    conn: asyncpg.Connection,
    organization_id: str,
    integration_id: UUID | None,
    event: CanonicalEvent,
) -> InsertResult:
    """Insert a canonical event unless (external_id, source_tool) already exists.

    On conflict the existing row is returned untouched with created=False.
    """
    row = await conn.fetchrow(
        f"""
        INSERT INTO events (
            organization_id, integration_id, external_id, source_tool, type,
            category, status, raw_data, occurred_at
        )
        VALUES ($1, $2, $3, $4, $5, $6, 'pending', $7, $8)
        ON CONFLICT (external_id, source_tool) DO NOTHING
        RETURNING {_COLUMNS}
        """,
        organization_id,
        integration_id,
        event.external_id,
        event.source_tool,
        event.type,
        event.category.value,
        json.dumps(event.raw_data),
        event.occurred_at,
    )
    if row is not None:
        return InsertResult(event=StoredEvent(row), created=True)

    existing = await conn.fetchrow(
        f"SELECT {_COLUMNS} FROM events WHERE external_id = $1 AND source_tool = $2",
        event.external_id,
        event.source_tool,
    )
    if existing is None:
        # Events are never deleted, so a conflicting row must be visible here
        raise RuntimeError(
            f"Event {event.source_tool}/{event.external_id} conflicted but is not visible"
        )
    return InsertResult(event=StoredEvent(existing), created=False)


async def lock_event(conn: asyncpg.Connection, event_id: UUID) -> StoredEvent | None:
    """Lock an event row for processing. Must be called inside a transaction.

    Concurrent processors of the same event serialize here; the second one sees
    the status written by the first.
    """
    row = await conn.fetchrow(
        f"SELECT {_COLUMNS} FROM events WHERE id = $1 FOR UPDATE",
        event_id,
    )
    return StoredEvent(row) if row else None


async def mark_event_processed(conn: asyncpg.Connection, event_id: UUID) -> None:
    await conn.execute(
        """
        UPDATE events
        SET status = 'processed', error = NULL, attempts = attempts + 1, processed_at = NOW()
        WHERE id = $1
        """,
        event_id,
    )


async def mark_event_failed(conn: asyncpg.Connection, event_id: UUID, error: dict) -> int:
    """Record a failed processing attempt and return the attempt count so far."""
    attempts = await conn.fetchval(
        """
        UPDATE events
        SET status = 'failed', error = $2, attempts = attempts + 1
        WHERE id = $1 AND status <> 'processed'
        RETURNING attempts
        """,
        event_id,
        json.dumps(error),
    )
    return attempts or 0


async def get_event(conn: asyncpg.Connection, event_id: UUID) -> StoredEvent | None:
    row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM events WHERE id = $1", event_id)
    return StoredEvent(row) if row else None


async def list_replayable_events(
    conn: asyncpg.Connection, *, older_than_seconds: int, max_attempts: int, limit: int
) -> list[StoredEvent]:
    """Unfinished events whose integration still accepts deliveries, oldest first."""
    rows = await conn.fetch(
        f"""
        SELECT {_JOINED_COLUMNS}
        FROM events e
        JOIN integrations i ON i.id = e.integration_id
        WHERE e.status IN ('pending', 'failed')
          AND e.attempts < $1
          AND e.created_at < NOW() - make_interval(secs => $2)
          AND i.status <> 'disconnected'
        ORDER BY e.created_at
        LIMIT $3
        """,
        max_attempts,
        float(older_than_seconds),
        limit,
    )
    return [StoredEvent(row) for row in rows]
