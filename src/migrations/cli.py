#!/usr/bin/env python3
"""
Builders' Stack Database Migration CLI

Creates, lists and applies the timestamped SQL migrations in `migrations/`.
"""

import asyncio
import re
from datetime import datetime

import typer
from dotenv import load_dotenv
from rich import box
from rich.console import Console
from rich.table import Table

from src.migrations.core import (
    MigrationError,
    database_name,
    get_migration_files,
    get_migration_status,
    get_migrations_dir,
    migrate_database,
)
from src.utils.config import get_database_url

# Load environment variables
load_dotenv()

app = typer.Typer(
    name="migrations",
    help="Database migration management for the Builders' Stack",
    add_completion=False,
)
console = Console()


def log_info(message: str) -> None:
    console.print(f"ℹ️  {message}", style="blue")


def log_success(message: str) -> None:
    console.print(f"✅ {message}", style="green")


def log_error(message: str) -> None:
    console.print(f"❌ {message}", style="red")


def slugify(text: str) -> str:
    """Convert text to a slug suitable for filenames."""
    slug = re.sub(r"[^a-z0-9]+", "_", text.lower())
    return slug.strip("_")


def generate_timestamp() -> str:
    """Generate timestamp for migration filename."""
    return datetime.now().strftime("%Y%m%d%H%M%S")


def render_template(description: str) -> str:
    # No BEGIN/COMMIT: each file already runs inside one transaction
    return f"""-- Migration: {description}
-- Created: {datetime.now().strftime("%Y-%m-%d %H:%M:%S")}

-- Add your migration SQL here
-- Example:
-- CREATE TABLE example_table (
--     id UUID DEFAULT gen_random_uuid() PRIMARY KEY,
--     name TEXT NOT NULL,
--     created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
-- );
"""


@app.command()
def create(
    description: str = typer.Argument(..., help="Brief description of the migration"),
) -> None:
    """Create a new migration file with proper naming and template."""
    target_dir = get_migrations_dir()
    target_dir.mkdir(parents=True, exist_ok=True)

    filepath = target_dir / f"{generate_timestamp()}_{slugify(description)}.sql"
    if filepath.exists():
        log_error(f"File already exists: {filepath}")
        raise typer.Exit(1)

    filepath.write_text(render_template(description))
    log_success(f"Created migration file: {filepath}")

    log_info("Recent migrations:")
    for file in get_migration_files(target_dir)[-5:]:
        console.print(f"  - {file.name}")


@app.command("list")
def list_command() -> None:
    """List available migration files."""
    files = get_migration_files(get_migrations_dir())
    if not files:
        console.print("  No migrations found")
        return
    for file in files:
        console.print(f"  {file.name}")


@app.command()
def migrate(
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Show what would be done without executing"
    ),
    retries: int = typer.Option(3, "--retries", help="Number of connection attempts"),
    timeout: int = typer.Option(300, "--timeout", help="Per-migration timeout in seconds"),
) -> None:
    """Apply pending migrations to DATABASE_URL."""
    try:
        db_url = get_database_url()
        result = asyncio.run(
            migrate_database(db_url, timeout=timeout, retries=retries, dry_run=dry_run)
        )
    except (MigrationError, ValueError) as e:
        log_error(str(e))
        raise typer.Exit(1)

    if not result.success:
        log_error(f"Migration failed after applying {result.applied}/{result.total}")
        raise typer.Exit(1)
    log_success(f"{database_name(db_url)}: applied {result.applied} of {result.total} migrations")


@app.command()
def status() -> None:
    """Show which migrations have been applied."""
    try:
        rows = asyncio.run(get_migration_status(get_database_url()))
    except (MigrationError, ValueError) as e:
        log_error(str(e))
        raise typer.Exit(1)

    table = Table(title="Migration status", box=box.SIMPLE)
    table.add_column("Version")
    table.add_column("File")
    table.add_column("Applied")
    for version, filename, applied in rows:
        table.add_row(version, filename, "[green]yes[/green]" if applied else "[yellow]no[/yellow]")
    console.print(table)


if __name__ == "__main__":
    app()
