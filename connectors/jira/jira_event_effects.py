"""Apply Jira issue and comment events to tasks."""

import asyncpg

from connectors.base.event_effects import EffectContext
from connectors.base.utils import parse_provider_timestamp
from connectors.jira.jira_webhook_normalizer import jira_issue_project_id
from src.database import tasks
from src.database.events import StoredEvent
from src.utils.logging import get_logger

logger = get_logger(__name__)

_STATUS_BY_CATEGORY = {"new": "todo", "indeterminate": "in_progress", "done": "done"}


def jira_task_status(fields: dict) -> str:
    category = ((fields.get("status") or {}).get("statusCategory") or {}).get("key")
    return _STATUS_BY_CATEGORY.get(category, "todo")


def jira_browse_url(issue: dict) -> str | None:
    """https://acme.atlassian.net/rest/api/2/issue/10001 -> https://acme.atlassian.net/browse/KEY-1"""
    api_url = issue.get("self")
    key = issue.get("key")
    if not api_url or not key or "/rest/" not in api_url:
        return None
    return f"{api_url.split('/rest/', 1)[0]}/browse/{key}"


def _issue_attributes(issue: dict, fields: dict) -> dict:
    attributes = {"key": issue.get("key")}
    if priority := (fields.get("priority") or {}).get("name"):
        attributes["priority"] = priority
    if issue_type := (fields.get("issuetype") or {}).get("name"):
        attributes["issue_type"] = issue_type
    if assignee := (fields.get("assignee") or {}).get("displayName"):
        attributes["assignee"] = assignee
    if "labels" in fields:
        attributes["labels"] = fields.get("labels") or []
    return attributes


async def _upsert_issue(conn: asyncpg.Connection, context: EffectContext, payload: dict) -> None:
    issue = payload["issue"]
    fields = issue.get("fields") or {}
    project_id = await tasks.get_external_project_id(
        conn, context.organization_id, "jira", jira_issue_project_id(payload)
    )
    task_id = await tasks.upsert_task(
        conn,
        context.organization_id,
        "jira",
        str(issue["id"]),
        title=fields.get("summary") or "",
        status=jira_task_status(fields),
        url=jira_browse_url(issue),
        project_id=project_id,
        provider_updated_at=parse_provider_timestamp(fields.get("updated")),
        attributes=_issue_attributes(issue, fields),
    )
    if task_id is None:
        logger.info("Skipped out-of-order Jira issue update", issue_id=str(issue["id"]))


async def _update_comment_count(
    conn: asyncpg.Connection, context: EffectContext, payload: dict
) -> None:
    issue = payload["issue"]
    comments = (issue.get("fields") or {}).get("comment") or {}
    total = comments.get("total")
    if not isinstance(total, int):
        return
    updated = await tasks.merge_task_attributes(
        conn, context.organization_id, "jira", str(issue["id"]), {"comment_count": total}
    )
    if not updated:
        logger.debug("Jira comment for unknown issue", issue_id=str(issue["id"]))


async def apply_jira_event_effects(
    conn: asyncpg.Connection, context: EffectContext, event: StoredEvent
) -> None:
    payload = event.raw_data
    webhook_event = payload.get("webhookEvent")

    if webhook_event in ("jira:issue_created", "jira:issue_updated"):
        await _upsert_issue(conn, context, payload)
    elif webhook_event == "jira:issue_deleted":
        await tasks.set_task_deleted(
            conn, context.organization_id, "jira", str(payload["issue"]["id"]), True
        )
    elif webhook_event in ("comment_created", "comment_deleted"):
        await _update_comment_count(conn, context, payload)
    else:
        logger.debug("Jira event stored without side effects", webhook_event=webhook_event)
