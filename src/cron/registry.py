from __future__ import annotations

import json
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from src.utils.logging import get_logger

logger = get_logger(__name__)

CronFunc = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class CronJobDef:
    id: str
    func: CronFunc
    crontab: str | None = None  # e.g. "*/5 * * * *"
    name: str | None = None  # human-friendly display name
    tags: list[str] = field(default_factory=list)
    max_instances: int = 1
    misfire_grace_time: int = 300
    coalesce: bool = True
    enabled: bool = True  # env-gated at registration time


# Global in-process registry
CRON_REGISTRY: dict[str, CronJobDef] = {}


def should_run_this_pod() -> bool:
    """Gate all crons at the pod level so only scheduler replicas fire jobs.

    IS_SCHEDULER defaults to on; set IS_SCHEDULER=0 on extra replicas.
    """
    return os.getenv("IS_SCHEDULER", "1") == "1"


def load_runtime_overrides() -> dict[str, str]:
    """
    Allow per-job schedule overrides without a deploy.
    Env: CRON_OVERRIDES_JSON='{"replay_pending_events":"*/2 * * * *"}'
    """
    raw = os.getenv("CRON_OVERRIDES_JSON", "").strip()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Ignoring invalid CRON_OVERRIDES_JSON: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring CRON_OVERRIDES_JSON that is not a JSON object")
        return {}
    return {str(job_id): str(crontab) for job_id, crontab in data.items()}


def filter_jobs_by_tags(jobs: dict[str, CronJobDef]) -> dict[str, CronJobDef]:
    """
    Run only jobs whose tags intersect CRON_TAGS (comma-separated).
    Leave CRON_TAGS unset to run all registered jobs for this pod.
    """
    wanted = {t.strip() for t in os.getenv("CRON_TAGS", "").split(",") if t.strip()}
    if not wanted:
        return jobs
    return {job_id: job for job_id, job in jobs.items() if wanted.intersection(job.tags)}
