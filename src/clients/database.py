import asyncio
import contextlib
import json
from collections.abc import AsyncIterator

import asyncpg

from src.utils.config import get_config_value, get_database_url
from src.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MIN_POOL_SIZE = 1
DEFAULT_MAX_POOL_SIZE = 10


async def init_connection(conn: asyncpg.Connection) -> None:
    """An initializer run on every new connection from the shared pool."""
    await conn.set_type_codec(
        "jsonb",
        # Callsites always json.dumps() explicitly so a value is never encoded twice.
        encoder=lambda x: x,
        decoder=json.loads,
        schema="pg_catalog",
    )


class DatabaseManager:
    """Own the asyncpg pool for the application database.

    The pool is created lazily on first use so CLIs and tests can import modules that
    reference the manager without a database.
    """

    def __init__(self, dsn: str | None = None) -> None:
        self._dsn = dsn
        self._pool: asyncpg.Pool | None = None
        # Lazily initialized to avoid binding to an event loop at import time
        self._lock: asyncio.Lock | None = None

    @property
    def _pool_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def get_pool(self) -> asyncpg.Pool:
        """Get the shared pool, initializing it if needed."""
        if self._pool is None:
            async with self._pool_lock:
                if self._pool is None:
                    self._pool = await asyncpg.create_pool(
                        self._dsn or get_database_url(),
                        min_size=int(get_config_value("DB_POOL_MIN_SIZE", DEFAULT_MIN_POOL_SIZE)),
                        max_size=int(get_config_value("DB_POOL_MAX_SIZE", DEFAULT_MAX_POOL_SIZE)),
                        timeout=30,  # connection acquisition timeout
                        command_timeout=10,
                        init=init_connection,
                    )
                    logger.info("Database pool initialized")
        return self._pool

    @contextlib.asynccontextmanager
    async def acquire_connection(self) -> AsyncIterator[asyncpg.Connection]:
        """Context manager to acquire a connection from the shared pool.

        Usage:
            async with db_manager.acquire_connection() as conn:
                await conn.fetchrow(...)
        """
        pool = await self.get_pool()
        async with pool.acquire() as conn:
            yield conn

    async def health_check(self) -> bool:
        try:
            async with self.acquire_connection() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    async def cleanup(self) -> None:
        """Close the pool and reset event-loop-bound state."""
        if self._pool is not None:
            with contextlib.suppress(Exception):
                await self._pool.close()
            self._pool = None
            logger.info("Database pool closed")
        self._lock = None


db_manager = DatabaseManager()
