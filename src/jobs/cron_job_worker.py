"""
Cron job worker entrypoint.

Runs cron-scheduled async jobs via APScheduler on the main asyncio event loop.
Health endpoints are served from a dedicated HTTP thread.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import threading
from pathlib import Path

# Initialize New Relic agent before any other imports
import newrelic.agent

from src.utils.config import get_builders_environment, get_config_value

current_dir = Path(__file__).parent
config_path = current_dir / "newrelic_cron_worker.ini"
newrelic.agent.initialize(str(config_path), environment=get_builders_environment())

import uvicorn
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI

from src.clients.database import db_manager
from src.cron import discover_and_register_jobs, setup_scheduler
from src.utils.logging import get_logger

logger = get_logger(__name__)


class CronJobWorker:
    """Hosts the scheduler plus /health/live, /health/ready and /jobs."""

    def __init__(self, http_port: int | None = None):
        self.http_port = http_port or int(get_config_value("CRON_HTTP_PORT", 8090))
        self.scheduler: AsyncIOScheduler | None = None
        self.app = self._create_app()

    def _create_app(self) -> FastAPI:
        app = FastAPI(title="CronJobWorker HTTP Server", docs_url=None, redoc_url=None)

        @app.get("/health/live")
        async def liveness():
            return {"status": "healthy", "service": "CronJobWorker"}

        @app.get("/health/ready")
        async def readiness():
            return {
                "status": "ready",
                "scheduler_running": bool(self.scheduler and self.scheduler.running),
            }

        @app.get("/jobs")
        async def list_jobs():
            jobs = []
            if self.scheduler:
                for j in self.scheduler.get_jobs():
                    jobs.append(
                        {
                            "id": j.id,
                            "name": j.name,
                            "next_run_time": str(j.next_run_time) if j.next_run_time else None,
                            "trigger": str(j.trigger),
                        }
                    )
            return {"jobs": jobs}

        return app

    def run_http_server_thread(self) -> None:
        server = uvicorn.Server(
            uvicorn.Config(self.app, host="0.0.0.0", port=self.http_port, log_level="warning")
        )
        logger.info(f"Starting HTTP server on port {self.http_port}")
        asyncio.run(server.serve())

    def start_scheduler(self) -> None:
        """Create and start the scheduler after importing every job module. Call once."""
        # No web transactions here, so register the NR app explicitly
        newrelic.agent.register_application()

        self.scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,
                "misfire_grace_time": int(get_config_value("CRON_MISFIRE_GRACE_SECONDS", 300)),
            },
        )
        discover_and_register_jobs()
        # Respects IS_SCHEDULER, CRON_TAGS, CRON_OVERRIDES_JSON
        setup_scheduler(self.scheduler)
        self.scheduler.start()
        logger.info("APScheduler started", job_count=len(self.scheduler.get_jobs()))

    async def shutdown(self) -> None:
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("APScheduler shut down")
        await db_manager.cleanup()


async def main() -> None:
    """Run the scheduler until SIGINT/SIGTERM."""
    worker = CronJobWorker()
    stop_event = asyncio.Event()

    def _handle_sigterm():
        logger.info("Received termination signal; stopping cron worker")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _handle_sigterm)

    http_thread = threading.Thread(
        target=worker.run_http_server_thread, daemon=True, name="http-server"
    )
    http_thread.start()

    try:
        worker.start_scheduler()
        await stop_event.wait()
    finally:
        await worker.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
