"""Apply GitHub events to commits, pull requests and issue-backed tasks."""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

import asyncpg

from connectors.base.event_effects import EffectContext, EntityNotFoundError
from connectors.base.utils import parse_provider_timestamp
from connectors.github.github_webhook_normalizer import extract_github_repository_id
from src.database import code_repositories, tasks
from src.database.code_repositories import CodeRepository
from src.database.events import StoredEvent
from src.utils.logging import get_logger

logger = get_logger(__name__)

# GitHub review states that change a pull request's approval status
_APPROVAL_STATES = {"approved": "approved", "changes_requested": "changes_requested"}


def pull_request_state(pull_request: dict) -> str:
    """Collapse GitHub's state/draft/merged flags into one state."""
    if pull_request.get("merged") or pull_request.get("merged_at"):
        return "merged"
    if pull_request.get("state") == "open":
        return "draft" if pull_request.get("draft") else "open"
    return "closed"


async def _apply_push(
    conn: asyncpg.Connection, context: EffectContext, repository: CodeRepository, payload: dict
) -> None:
    inserted = 0
    for commit in payload.get("commits") or []:
        author = commit.get("author") or {}
        if await code_repositories.insert_commit_if_absent(
            conn,
            repository.id,
            sha=commit["id"],
            message=commit.get("message", ""),
            author_name=author.get("name"),
            author_email=author.get("email"),
            url=commit.get("url"),
            committed_at=parse_provider_timestamp(commit.get("timestamp")),
        ):
            inserted += 1
    logger.info("Applied GitHub push", repository_id=str(repository.id), commits_inserted=inserted)


async def _apply_pull_request(
    conn: asyncpg.Connection, context: EffectContext, repository: CodeRepository, payload: dict
) -> None:
    pull_request = payload["pull_request"]
    await code_repositories.upsert_pull_request(
        conn,
        repository.id,
        external_id=str(pull_request["id"]),
        number=int(pull_request["number"]),
        title=pull_request.get("title") or "",
        state=pull_request_state(pull_request),
        author=(pull_request.get("user") or {}).get("login"),
        url=pull_request.get("html_url"),
        merged_at=parse_provider_timestamp(pull_request.get("merged_at")),
        closed_at=parse_provider_timestamp(pull_request.get("closed_at")),
        provider_updated_at=parse_provider_timestamp(
            pull_request.get("updated_at"), default=datetime.now(UTC)
        ),
    )


async def _apply_pull_request_review(
    conn: asyncpg.Connection, context: EffectContext, repository: CodeRepository, payload: dict
) -> None:
    review_state = str((payload.get("review") or {}).get("state", "")).lower()
    approval_status = _APPROVAL_STATES.get(review_state)
    if approval_status is None:
        return
    # The review payload carries the full pull request; make sure the row exists first
    await _apply_pull_request(conn, context, repository, payload)
    await code_repositories.set_pull_request_approval(
        conn, repository.id, int(payload["pull_request"]["number"]), approval_status
    )


async def _apply_issues(
    conn: asyncpg.Connection, context: EffectContext, repository: CodeRepository, payload: dict
) -> None:
    issue = payload["issue"]
    external_id = str(issue["id"])
    if payload.get("action") == "deleted":
        await tasks.set_task_deleted(conn, context.organization_id, "github", external_id, True)
        return
    await tasks.upsert_task(
        conn,
        context.organization_id,
        "github",
        external_id,
        title=issue.get("title") or "",
        status="done" if issue.get("state") == "closed" else "todo",
        url=issue.get("html_url"),
        provider_updated_at=parse_provider_timestamp(issue.get("updated_at")),
    )


_GitHubHandler = Callable[
    [asyncpg.Connection, EffectContext, CodeRepository, dict], Awaitable[None]
]

_HANDLERS: dict[str, _GitHubHandler] = {
    "push": _apply_push,
    "pull_request": _apply_pull_request,
    "pull_request_review": _apply_pull_request_review,
    "issues": _apply_issues,
}


async def apply_github_event_effects(
    conn: asyncpg.Connection, context: EffectContext, event: StoredEvent
) -> None:
    """Apply a stored GitHub event. Events without a handler are recorded only."""
    event_name = event.type.split(".", 1)[0]
    handler = _HANDLERS.get(event_name)
    if handler is None:
        return

    repository_external_id = extract_github_repository_id(event.raw_data)
    repository = (
        await code_repositories.get_repository_by_external_id(
            conn, context.organization_id, repository_external_id
        )
        if repository_external_id
        else None
    )
    if repository is None:
        raise EntityNotFoundError(
            f"Repository {repository_external_id} is not tracked by this organization"
        )

    await handler(conn, context, repository, event.raw_data)
