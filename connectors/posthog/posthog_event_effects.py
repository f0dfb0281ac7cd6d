import asyncpg

from connectors.base.event_effects import EffectContext
from connectors.posthog.posthog_webhook_normalizer import (
    posthog_event_attributes,
    posthog_event_fields,
)
from src.database import tasks
from src.database.analytics_events import insert_analytics_event_if_absent
from src.database.events import StoredEvent
from src.utils.logging import get_logger

logger = get_logger(__name__)


async def apply_posthog_event_effects(
    conn: asyncpg.Connection, context: EffectContext, event: StoredEvent
) -> None:
    """Store the analytics event, linked to the integration's PostHog project when known."""
    project_id = None
    if posthog_project_id := context.integration_metadata.get("projectId"):
        project_id = await tasks.get_external_project_id(
            conn, context.organization_id, "posthog", str(posthog_project_id)
        )
        if project_id is None:
            logger.warning(
                "PostHog project not found; storing event without project",
                posthog_project_id=str(posthog_project_id),
            )

    inserted = await insert_analytics_event_if_absent(
        conn,
        context.organization_id,
        project_id,
        source_tool="posthog",
        external_id=event.external_id,
        event_type=event.type,
        distinct_id=event.raw_data.get("distinct_id"),
        occurred_at=event.occurred_at,
        fields=posthog_event_fields(event.raw_data),
        attributes=posthog_event_attributes(event.raw_data),
    )
    if not inserted:
        logger.debug("PostHog analytics event already stored", external_id=event.external_id)
