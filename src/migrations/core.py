"""Core migration functionality for the Builders' Stack database."""

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import asyncpg
import sqlparse

from src.utils.logging import get_logger

logger = get_logger(__name__)

MIGRATION_TABLE = "schema_migrations"


class MigrationError(Exception):
    """Raised when migrations cannot be loaded or applied."""

    pass


@dataclass
class MigrationRun:
    applied: int
    total: int
    success: bool


def get_migrations_dir() -> Path:
    """Repository `migrations/` directory, overridable with MIGRATIONS_DIR."""
    default_path = Path(__file__).parent.parent.parent / "migrations"
    return Path(os.getenv("MIGRATIONS_DIR", str(default_path)))


def get_migration_files(directory: Path) -> list[Path]:
    """Get all migration files from a directory, sorted by timestamp."""
    if not directory.exists():
        return []
    # Timestamp prefix ensures correct order
    return sorted(directory.glob("*.sql"))


def extract_version_from_filename(filename: str) -> str:
    """Extract version timestamp from migration filename."""
    return filename.split("_")[0]


def parse_sql_statements(sql_content: str) -> list[str]:
    """Split SQL content into individual non-empty statements."""
    return [stmt.strip() for stmt in sqlparse.split(sql_content) if stmt.strip()]


def database_name(db_url: str) -> str:
    return urlparse(db_url).path.lstrip("/") or "postgres"


async def ensure_migrations_table(conn: asyncpg.Connection) -> None:
    await conn.execute(f"""
        CREATE TABLE IF NOT EXISTS public.{MIGRATION_TABLE} (
            version VARCHAR(255) PRIMARY KEY,
            applied_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        );
    """)


async def get_applied_migrations(conn: asyncpg.Connection) -> set[str]:
    """Get set of applied migration versions."""
    exists = await conn.fetchval(
        """
        SELECT EXISTS (
            SELECT FROM information_schema.tables
            WHERE table_name = $1
        )
    """,
        MIGRATION_TABLE,
    )
    if not exists:
        return set()

    rows = await conn.fetch(f"SELECT version FROM public.{MIGRATION_TABLE}")
    return {row["version"] for row in rows}


async def apply_migration_file(
    conn: asyncpg.Connection, migration_file: Path, timeout: int = 300, dry_run: bool = False
) -> bool:
    """Apply one migration file and record it, all inside a single transaction.

    Migration files must not contain their own BEGIN/COMMIT.
    """
    version = extract_version_from_filename(migration_file.name)

    if dry_run:
        logger.info(f"DRY RUN: Would apply {migration_file.name}")
        return True

    statements = parse_sql_statements(migration_file.read_text())
    try:
        async with conn.transaction():
            await conn.execute(f"SET LOCAL statement_timeout = '{timeout}s'")
            for statement in statements:
                await conn.execute(statement)
            await conn.execute(
                f"INSERT INTO public.{MIGRATION_TABLE} (version) VALUES ($1)", version
            )
    except Exception as e:
        logger.error(f"Failed to apply migration {migration_file.name}: {e}")
        return False

    logger.info(f"Applied migration {migration_file.name} ({len(statements)} statements)")
    return True


async def connect_with_retries(db_url: str, retries: int = 3) -> asyncpg.Connection:
    for attempt in range(retries):
        try:
            return await asyncpg.connect(db_url)
        except (OSError, asyncpg.PostgresError) as e:
            if attempt == retries - 1:
                raise MigrationError(
                    f"Failed to connect to {database_name(db_url)} after {retries} attempts: {e}"
                ) from e
            await asyncio.sleep(2**attempt)  # Exponential backoff
    raise MigrationError("retries must be at least 1")


async def migrate_database(
    db_url: str,
    migrations_dir: Path | None = None,
    timeout: int = 300,
    retries: int = 3,
    dry_run: bool = False,
) -> MigrationRun:
    """Apply every pending migration in order, stopping at the first failure."""
    migrations_dir = migrations_dir or get_migrations_dir()
    db_name = database_name(db_url)

    migration_files = get_migration_files(migrations_dir)
    if not migration_files:
        logger.warning(f"No migrations found in {migrations_dir}")
        return MigrationRun(applied=0, total=0, success=True)

    conn = await connect_with_retries(db_url, retries)
    try:
        if not dry_run:
            await ensure_migrations_table(conn)
        applied_versions = await get_applied_migrations(conn)

        applied = 0
        for migration_file in migration_files:
            if extract_version_from_filename(migration_file.name) in applied_versions:
                logger.debug(f"Skipping {migration_file.name} (already applied to {db_name})")
                continue

            if not await apply_migration_file(conn, migration_file, timeout, dry_run):
                return MigrationRun(applied=applied, total=len(migration_files), success=False)
            applied += 1

        return MigrationRun(applied=applied, total=len(migration_files), success=True)
    finally:
        await conn.close()


async def get_migration_status(
    db_url: str, migrations_dir: Path | None = None
) -> list[tuple[str, str, bool]]:
    """(version, filename, applied) for every migration file on disk."""
    migrations_dir = migrations_dir or get_migrations_dir()
    conn = await connect_with_retries(db_url, retries=1)
    try:
        applied_versions = await get_applied_migrations(conn)
    finally:
        await conn.close()

    status = []
    for migration_file in get_migration_files(migrations_dir):
        version = extract_version_from_filename(migration_file.name)
        status.append((version, migration_file.name, version in applied_versions))
    return status
