"""Code repositories, commits and pull requests touched by GitHub webhooks."""

from datetime import datetime
from uuid import UUID

import asyncpg


class CodeRepository:
    def __init__(self, row: asyncpg.Record):
        self.id: UUID = row["id"]
        self.organization_id: str = row["organization_id"]
        self.external_id: str = row["external_id"]
        self.full_name: str = row["full_name"]
        self.default_branch: str | None = row["default_branch"]


class CodeRepositoriesRepository:
    """Lookups used to route GitHub deliveries to a tracked repository."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get_by_id(self, repository_id: UUID) -> CodeRepository | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT id, organization_id, external_id, full_name, default_branch
                FROM code_repositories
                WHERE id = $1
                """,
                repository_id,
            )
            return CodeRepository(row) if row else None


async def get_repository_by_external_id(
    conn: asyncpg.Connection, organization_id: str, external_id: str
) -> CodeRepository | None:
    row = await conn.fetchrow(
        """
        SELECT id, organization_id, external_id, full_name, default_branch
        FROM code_repositories
        WHERE organization_id = $1 AND external_id = $2
        """,
        organization_id,
        external_id,
    )
    return CodeRepository(row) if row else None


async def insert_commit_if_absent(
    conn: asyncpg.Connection,
    repository_id: UUID,
    *,
    sha: str,
    message: str,
    author_name: str | None,
    author_email: str | None,
    url: str | None,
    committed_at: datetime | None,
) -> bool:
    """Insert a commit once per (repository, sha). Returns True if a row was written."""
    result = await conn.execute(
        """
        INSERT INTO commits (repository_id, external_id, message, author_name, author_email, url, committed_at)
        VALUES ($1, $2, $3, $4, $5, $6, $7)
        ON CONFLICT (repository_id, external_id) DO NOTHING
        """,
        repository_id,
        sha,
        message,
        author_name,
        author_email,
        url,
        committed_at,
    )
    return result != "INSERT 0 0"


async def upsert_pull_request(
    conn: asyncpg.Connection,
    repository_id: UUID,
    *,
    external_id: str,
    number: int,
    title: str,
    state: str,
    author: str | None,
    url: str | None,
    merged_at: datetime | None,
    closed_at: datetime | None,
    provider_updated_at: datetime,
) -> None:
    """Insert or update a pull request, last-write-wins on GitHub's updated_at.

    A delivery carrying an older updated_at than the stored row is ignored, so
    out-of-order redeliveries cannot roll the PR state backwards.
    """
    await conn.execute(
        """
        INSERT INTO pull_requests (
            repository_id, external_id, number, title, state, author, url,
            merged_at, closed_at, provider_updated_at
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
        ON CONFLICT (repository_id, number) DO UPDATE SET
            title = EXCLUDED.title,
            state = EXCLUDED.state,
            url = EXCLUDED.url,
            merged_at = EXCLUDED.merged_at,
            closed_at = EXCLUDED.closed_at,
            provider_updated_at = EXCLUDED.provider_updated_at
        WHERE pull_requests.provider_updated_at <= EXCLUDED.provider_updated_at
        """,
        repository_id,
        external_id,
        number,
        title,
        state,
        author,
        url,
        merged_at,
        closed_at,
        provider_updated_at,
    )


async def set_pull_request_approval(
    conn: asyncpg.Connection, repository_id: UUID, number: int, approval_status: str
) -> bool:
    """Returns False when the pull request has not been seen yet."""
    result = await conn.execute(
        """
        UPDATE pull_requests
        SET approval_status = $3
        WHERE repository_id = $1 AND number = $2
        """,
        repository_id,
        number,
        approval_status,
    )
    return result != "UPDATE 0"
