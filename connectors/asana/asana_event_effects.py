"""Apply Asana task and project events."""

import asyncpg

from connectors.base.event_effects import EffectContext
from src.database import tasks
from src.database.events import StoredEvent
from src.utils.logging import get_logger

logger = get_logger(__name__)


def _task_changes(change: dict) -> dict[str, str]:
    """Map an Asana field change onto task columns; unknown fields only touch the row."""
    field = change.get("field")
    new_value = change.get("new_value")
    if field == "name" and isinstance(new_value, str):
        return {"title": new_value}
    if field == "completed" and isinstance(new_value, bool):
        return {"status": "done" if new_value else "todo"}
    return {}


async def _apply_task_event(
    conn: asyncpg.Connection, context: EffectContext, action: str, resource: dict, event: dict
) -> None:
    gid = str(resource["gid"])
    if action == "added":
        await tasks.insert_task_if_absent(
            conn, context.organization_id, "asana", gid, title=resource.get("name") or ""
        )
    elif action == "changed":
        # Raises TaskNotFoundError when the add has not arrived yet; replay retries it
        await tasks.update_task_fields(
            conn, context.organization_id, "asana", gid, **_task_changes(event.get("change") or {})
        )
    elif action in ("removed", "deleted"):
        await tasks.set_task_deleted(conn, context.organization_id, "asana", gid, True)
    elif action == "undeleted":
        await tasks.set_task_deleted(conn, context.organization_id, "asana", gid, False)


async def _apply_project_event(
    conn: asyncpg.Connection, context: EffectContext, action: str, resource: dict
) -> None:
    gid = str(resource["gid"])
    if action in ("added", "changed"):
        await tasks.upsert_external_project(
            conn, context.organization_id, "asana", gid, resource.get("name") or ""
        )
    elif action in ("removed", "deleted"):
        await tasks.archive_external_project(conn, context.organization_id, "asana", gid)


async def apply_asana_event_effects(
    conn: asyncpg.Connection, context: EffectContext, event: StoredEvent
) -> None:
    resource = event.raw_data.get("resource") or {}
    action = event.raw_data.get("action") or ""
    resource_type = resource.get("resource_type")

    if resource_type == "task":
        await _apply_task_event(conn, context, action, resource, event.raw_data)
    elif resource_type == "project":
        await _apply_project_event(conn, context, action, resource)
    else:
        logger.debug("Asana event stored without side effects", resource_type=resource_type)
