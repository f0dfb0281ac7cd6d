"""Apply Canny post, comment and vote events to feed items."""

import asyncpg

from connectors.base.event_effects import EffectContext
from connectors.canny.canny_webhook_normalizer import canny_board_id
from src.database import feeds, tasks
from src.database.events import StoredEvent
from src.utils.logging import get_logger

logger = get_logger(__name__)

# event type -> (counter column, delta)
_COUNTER_EVENTS = {
    "comment.created": ("comments_count", 1),
    "comment.deleted": ("comments_count", -1),
    "vote.created": ("score", 1),
    "vote.deleted": ("score", -1),
}


def _name(person: dict | None) -> str | None:
    return (person or {}).get("name")


def _person_id(person: dict | None) -> str | None:
    person_id = (person or {}).get("id")
    return str(person_id) if person_id else None


def _related_post_id(obj: dict) -> str | None:
    post_id = obj.get("postID") or (obj.get("post") or {}).get("id")
    return str(post_id) if post_id else None


def _linked_jira_issue(post: dict) -> dict | None:
    if post.get("jiraIssue"):
        return post["jiraIssue"]
    linked = (post.get("jira") or {}).get("linkedIssues") or []
    return linked[-1] if linked else None


async def _insert_post(conn: asyncpg.Connection, context: EffectContext, post: dict) -> None:
    project_id = await tasks.get_external_project_id(
        conn, context.organization_id, "canny", canny_board_id(post)
    )
    await feeds.insert_feed_if_absent(
        conn,
        context.organization_id,
        "canny",
        str(post["id"]),
        project_id=project_id,
        title=post.get("title") or "",
        description=post.get("details"),
        author=_name(post.get("author")),
        author_id=_person_id(post.get("author")),
        owner=_name(post.get("owner")),
        owner_id=_person_id(post.get("owner")),
        category=(post.get("category") or {}).get("name"),
        url=post.get("url"),
        tags=[tag["name"] for tag in post.get("tags") or [] if tag.get("name")],
        score=post.get("score") or 0,
        comments_count=post.get("commentCount") or 0,
        status=post.get("status"),
    )


async def apply_canny_event_effects(
    conn: asyncpg.Connection, context: EffectContext, event: StoredEvent
) -> None:
    event_type = event.raw_data.get("type")
    obj = event.raw_data.get("object") or {}
    org = context.organization_id

    if event_type == "post.created":
        await _insert_post(conn, context, obj)
    elif event_type == "post.deleted":
        await feeds.mark_feed_deleted(conn, org, "canny", str(obj["id"]))
    elif event_type == "post.status_changed":
        await feeds.update_feed_status(conn, org, "canny", str(obj["id"]), obj.get("status") or "")
    elif event_type == "post.jira_issue_linked":
        jira_issue = _linked_jira_issue(obj)
        if jira_issue is not None:
            await feeds.merge_feed_attributes(
                conn, org, "canny", str(obj["id"]), {"jira_issue": jira_issue}
            )
    elif event_type in _COUNTER_EVENTS:
        post_id = _related_post_id(obj)
        if post_id is None:
            logger.warning("Canny event without a post", event_type=event_type)
            return
        column, delta = _COUNTER_EVENTS[event_type]
        updated = await feeds.adjust_feed_counter(conn, org, "canny", post_id, column, delta)
        if not updated:
            logger.debug("Canny event for unknown post", event_type=event_type, post_id=post_id)
    else:
        logger.debug("Canny event stored without side effects", event_type=event_type)
