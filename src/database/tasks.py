"""Task and project rows mutated by GitHub issue, Asana, Jira and Slack channel events.

Every statement is scoped by organization_id, so an event can only touch rows
owned by the organization of the integration that received it.
"""

import json
from datetime import datetime
from uuid import UUID

import asyncpg


class TaskNotFoundError(LookupError):
    """A webhook referenced a task this organization does not have."""

    def __init__(self, source_tool: str, external_id: str):
        self.source_tool = source_tool
        self.external_id = external_id
        super().__init__(f"Task {source_tool}/{external_id} not found")


async def upsert_task(
    conn: asyncpg.Connection,
    organization_id: str,
    source_tool: str,
    external_id: str,
    *,
    title: str,
    status: str,
    url: str | None = None,
    project_id: UUID | None = None,
    provider_updated_at: datetime | None = None,
    attributes: dict | None = None,
) -> UUID | None:
    """Create or update a task, last write wins by the provider's updated time.

    Returns the task id, or None when a newer version is already stored. Updates
    without provider_updated_at always apply.
    """
    return await conn.fetchval(
        """
        INSERT INTO tasks (
            organization_id, source_tool, external_id, title, status, url, project_id,
            provider_updated_at, attributes
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
        ON CONFLICT (organization_id, source_tool, external_id) DO UPDATE SET
            title = EXCLUDED.title,
            status = EXCLUDED.status,
            url = COALESCE(EXCLUDED.url, tasks.url),
            project_id = COALESCE(EXCLUDED.project_id, tasks.project_id),
            provider_updated_at = COALESCE(EXCLUDED.provider_updated_at, tasks.provider_updated_at),
            attributes = tasks.attributes || EXCLUDED.attributes,
            deleted_at = NULL,
            updated_at = NOW()
        WHERE tasks.provider_updated_at IS NULL
           OR EXCLUDED.provider_updated_at IS NULL
           OR tasks.provider_updated_at <= EXCLUDED.provider_updated_at
        RETURNING id
        """,
        organization_id,
        source_tool,
        external_id,
        title,
        status,
        url,
        project_id,
        provider_updated_at,
        json.dumps(attributes or {}),
    )


async def insert_task_if_absent(
    conn: asyncpg.Connection,
    organization_id: str,
    source_tool: str,
    external_id: str,
    *,
    title: str,
    status: str = "todo",
) -> None:
    await conn.execute(
        """
        INSERT INTO tasks (organization_id, source_tool, external_id, title, status)
        VALUES ($1, $2, $3, $4, $5)
        ON CONFLICT (organization_id, source_tool, external_id) DO NOTHING
        """,
        organization_id,
        source_tool,
        external_id,
        title,
        status,
    )


async def update_task_fields(
    conn: asyncpg.Connection,
    organization_id: str,
    source_tool: str,
    external_id: str,
    *,
    title: str | None = None,
    status: str | None = None,
) -> None:
    """Touch a task, changing only the fields given.

    Raises:
        TaskNotFoundError: If the organization has no such task
    """
    result = await conn.execute(
        """
        UPDATE tasks
        SET title = COALESCE($4, title),
            status = COALESCE($5, status),
            updated_at = NOW()
        WHERE organization_id = $1 AND source_tool = $2 AND external_id = $3
          AND deleted_at IS NULL
        """,
        organization_id,
        source_tool,
        external_id,
        title,
        status,
    )
    if result == "UPDATE 0":
        raise TaskNotFoundError(source_tool, external_id)


async def set_task_deleted(
    conn: asyncpg.Connection,
    organization_id: str,
    source_tool: str,
    external_id: str,
    deleted: bool,
) -> bool:
    """Soft delete (or restore) a task. Returns False if the task is unknown."""
    result = await conn.execute(
        f"""
        UPDATE tasks
        SET deleted_at = {"NOW()" if deleted else "NULL"}, updated_at = NOW()
        WHERE organization_id = $1 AND source_tool = $2 AND external_id = $3
        """,
        organization_id,
        source_tool,
        external_id,
    )
    return result != "UPDATE 0"


async def upsert_external_project(
    conn: asyncpg.Connection,
    organization_id: str,
    source_tool: str,
    external_id: str,
    name: str,
) -> UUID:
    return await conn.fetchval(
        """
        INSERT INTO projects (organization_id, source_tool, external_id, name)
        VALUES ($1, $2, $3, $4)
        ON CONFLICT (organization_id, source_tool, external_id) DO UPDATE SET
            name = EXCLUDED.name,
            archived_at = NULL,
            updated_at = NOW()
        RETURNING id
        """,
        organization_id,
        source_tool,
        external_id,
        name,
    )


async def archive_external_project(
    conn: asyncpg.Connection, organization_id: str, source_tool: str, external_id: str
) -> bool:
    result = await conn.execute(
        """
        UPDATE projects
        SET archived_at = COALESCE(archived_at, NOW()), updated_at = NOW()
        WHERE organization_id = $1 AND source_tool = $2 AND external_id = $3
        """,
        organization_id,
        source_tool,
        external_id,
    )
    return result != "UPDATE 0"


async def get_external_project_id(
    conn: asyncpg.Connection, organization_id: str, source_tool: str, external_id: str
) -> UUID | None:
    return await conn.fetchval(
        """
        SELECT id FROM projects
        WHERE organization_id = $1 AND source_tool = $2 AND external_id = $3
        """,
        organization_id,
        source_tool,
        external_id,
    )


async def merge_task_attributes(
    conn: asyncpg.Connection,
    organization_id: str,
    source_tool: str,
    external_id: str,
    attributes: dict,
) -> bool:
    """Merge keys into a task's attributes. Returns False if the task is unknown."""
    result = await conn.execute(
        """
        UPDATE tasks
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
