"""Repository for organization integrations (one per organization and tool)."""

import json
from datetime import datetime
from enum import Enum
from uuid import UUID

import asyncpg

from src.utils.logging import get_logger

logger = get_logger(__name__)


class ToolName(str, Enum):
    """Tools an organization can connect."""

    GITHUB = "github"
    SLACK = "slack"
    STRIPE = "stripe"
    ASANA = "asana"
    POSTHOG = "posthog"
    TRELLO = "trello"
    JIRA = "jira"
    CANNY = "canny"


class IntegrationStatus(str, Enum):
    """Valid integration statuses."""

    PENDING = "pending"
    ACTIVE = "active"
    SYNCING = "syncing"
    ERROR = "error"
    DISCONNECTED = "disconnected"


# Statuses for which organization-scoped webhook deliveries are accepted
WEBHOOK_ACCEPTING_STATUSES = frozenset(
    {IntegrationStatus.ACTIVE.value, IntegrationStatus.SYNCING.value}
)

_COLUMNS = """
    id, organization_id, tool_name, status, access_token, api_key, webhook_secret,
    webhook_id, external_account_id, metadata, last_sync_at, last_sync_status,
    created_at, updated_at
"""


class Integration:
    """Integration data model."""

    def __init__(self, row: asyncpg.Record):
        self.id: UUID = row["id"]
        self.organization_id: str = row["organization_id"]
        self.tool_name: str = row["tool_name"]
        self.status: str = row["status"]
        self.access_token: str | None = row["access_token"]
        self.api_key: str | None = row["api_key"]
        self.webhook_secret: str | None = row["webhook_secret"]
        self.webhook_id: str | None = row["webhook_id"]
        self.external_account_id: str | None = row["external_account_id"]
        self.metadata: dict = row["metadata"] or {}
        self.last_sync_at: datetime | None = row["last_sync_at"]
        self.last_sync_status: str | None = row["last_sync_status"]
        self.created_at: datetime = row["created_at"]
        self.updated_at: datetime = row["updated_at"]

    @property
    def accepts_webhooks(self) -> bool:
        return self.status in WEBHOOK_ACCEPTING_STATUSES

    @property
    def is_disconnected(self) -> bool:
        return self.status == IntegrationStatus.DISCONNECTED.value

    def to_dict(self) -> dict:
        """Convert to dictionary. Credentials are never included."""
        return {
            "id": str(self.id),
            "organization_id": self.organization_id,
            "tool_name": self.tool_name,
            "status": self.status,
            "external_account_id": self.external_account_id,
            "metadata": self.metadata,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
            "last_sync_status": self.last_sync_status,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class IntegrationsRepository:
    """Repository for integration reads and narrow, field-scoped writes.

    Status and sync bookkeeping are updated column by column so a webhook never
    clobbers credential or metadata changes made concurrently by connect flows.
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get_by_id(self, integration_id: UUID) -> Integration | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM integrations WHERE id = $1",
                integration_id,
            )
            return Integration(row) if row else None

    async def get_by_organization_and_tool(
        self, organization_id: str, tool_name: ToolName
    ) -> Integration | None:
        """Get the integration for an organization and tool (unique pair)."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_COLUMNS}
                FROM integrations
                WHERE organization_id = $1 AND tool_name = $2
                """,
                organization_id,
                tool_name.value,
            )
            return Integration(row) if row else None

    async def get_by_tool_and_external_account(
        self, tool_name: ToolName, external_account_id: str
    ) -> Integration | None:
        """Resolve an integration from a provider-side account id (e.g. Slack team_id).

        Disconnected rows are skipped so a workspace reconnected by another
        organization resolves to the live integration.
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_COLUMNS}
                FROM integrations
                WHERE tool_name = $1 AND external_account_id = $2
                  AND status <> 'disconnected'
                ORDER BY updated_at DESC
                LIMIT 1
                """,
                tool_name.value,
                external_account_id,
            )
            return Integration(row) if row else None

    async def create(
        self,
        organization_id: str,
        tool_name: ToolName,
        *,
        access_token: str | None = None,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        webhook_id: str | None = None,
        external_account_id: str | None = None,
        metadata: dict | None = None,
        status: IntegrationStatus = IntegrationStatus.PENDING,
    ) -> Integration:
        """Create an integration. Raises asyncpg.UniqueViolationError on a duplicate pair."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO integrations (
                    organization_id, tool_name, status, access_token, api_key,
                    webhook_secret, webhook_id, external_account_id, metadata
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                RETURNING {_COLUMNS}
                """,
                organization_id,
                tool_name.value,
                status.value,
                access_token,
                api_key,
                webhook_secret,
                webhook_id,
                external_account_id,
                json.dumps(metadata or {}),
            )
            return Integration(row)

    async def record_sync(self, integration_id: UUID, sync_status: str) -> None:
        """Set last_sync_at to now along with a short status text."""
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE integrations
                SET last_sync_at = NOW(), last_sync_status = $2
                WHERE id = $1
                """,
                integration_id,
                sync_status,
            )

    async def update_status(self, integration_id: UUID, status: IntegrationStatus) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE integrations
                SET status = $2, updated_at = NOW()
                WHERE id = $1
                """,
                integration_id,
                status.value,
            )

    async def mark_error(self, integration_id: UUID, sync_status: str) -> None:
        """Flag unrecoverable processing failure for admins; disconnected rows stay disconnected."""
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE integrations
                SET status = 'error', last_sync_status = $2, updated_at = NOW()
                WHERE id = $1 AND status <> 'disconnected'
                """,
                integration_id,
                sync_status,
            )
        logger.warning(
            "Integration marked as error",
            integration_id=str(integration_id),
            sync_status=sync_status,
        )

    async def mark_disconnected(self, integration_id: UUID) -> None:
        await self.update_status(integration_id, IntegrationStatus.DISCONNECTED)

    async def delete(self, integration_id: UUID) -> bool:
        """Delete an integration on explicit disconnect.

        The account/credential row is removed by the ON DELETE CASCADE foreign key;
        events keep their audit trail with integration_id set to NULL.
        """
        async with self.pool.acquire() as conn:
            result = await conn.execute("DELETE FROM integrations WHERE id = $1", integration_id)
        return result != "DELETE 0"
