"""Gatekeeper FastAPI service for webhook ingestion."""

import datetime
from contextlib import asynccontextmanager
from pathlib import Path

import newrelic.agent

from src.utils.config import get_builders_environment

config_path = Path(__file__).parent / "newrelic.ini"
builders_env = get_builders_environment()
# Initialize New Relic with the gatekeeper-specific config and environment
newrelic.agent.initialize(str(config_path), environment=builders_env)

from fastapi import FastAPI, HTTPException, Request

from src.clients.database import db_manager
from src.database.code_repositories import CodeRepositoriesRepository
from src.database.integrations import IntegrationsRepository
from src.ingest.gatekeeper.routes import router as webhook_router
from src.ingest.gatekeeper.services.event_writer import EventWriter
from src.utils.config import get_config_value
from src.utils.logging import get_logger, get_uvicorn_log_config

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database pool on startup and close it on shutdown."""
    logger.info("Starting Gatekeeper service...")

    pool = await db_manager.get_pool()
    integrations = IntegrationsRepository(pool)

    app.state.integrations = integrations
    app.state.code_repositories = CodeRepositoriesRepository(pool)
    app.state.event_writer = EventWriter(pool, integrations)

    logger.info("Gatekeeper service startup complete")

    yield

    logger.info("Shutting down Gatekeeper service...")
    await db_manager.cleanup()
    logger.info("Gatekeeper service shutdown complete")


app = FastAPI(
    title="Builders' Stack Gatekeeper",
    description="Webhook ingestion with signature verification and idempotent event storage",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    try:
        database_healthy = await db_manager.health_check()
        health_status = {
            "status": "healthy" if database_healthy else "unhealthy",
            "components": {"database": "healthy" if database_healthy else "unhealthy"},
        }
    except Exception as e:
        # Record the error in New Relic
        newrelic.agent.record_exception()

        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail={"status": "unhealthy", "error": str(e)})

    if health_status["status"] != "healthy":
        raise HTTPException(status_code=503, detail=health_status)
    return health_status


@app.get("/health/live")
async def liveness_check():
    """Liveness probe endpoint - checks if the application is alive."""
    # This should only fail if the process is completely broken
    return {"status": "alive", "timestamp": datetime.datetime.now().isoformat()}


@app.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness probe endpoint - checks if the application is ready to serve traffic."""
    if getattr(request.app.state, "event_writer", None) is None:
        raise HTTPException(
            status_code=503, detail={"status": "not_ready", "error": "services not initialized"}
        )

    try:
        database_healthy = await db_manager.health_check()
    except Exception as e:
        newrelic.agent.record_exception()

        logger.error(f"Readiness check failed: {e}")
        raise HTTPException(status_code=503, detail={"status": "not_ready", "error": str(e)})

    if not database_healthy:
        raise HTTPException(
            status_code=503, detail={"status": "not_ready", "components": {"database": "unhealthy"}}
        )
    return {"status": "ready", "components": {"database": "healthy"}}


# Include webhook routes
app.include_router(webhook_router)


def main():
    """Run the gatekeeper service."""
    import uvicorn

    port = int(get_config_value("GATEKEEPER_PORT", 8001))

    uvicorn.run(
        "src.ingest.gatekeeper.main:app",
        host="0.0.0.0",
        port=port,
        log_config=get_uvicorn_log_config(),
    )


if __name__ == "__main__":
    main()
