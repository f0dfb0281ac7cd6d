"""Scheduled maintenance for the webhook pipeline (event replay, OAuth cleanup)."""

from .decorators import cron
from .loader import discover_and_register_jobs
from .scheduler import setup_scheduler

__all__ = ["cron", "discover_and_register_jobs", "setup_scheduler"]
