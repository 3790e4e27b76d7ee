"""
Schema Migrations for the Carrier Store.

Versioned SQL scripts live in ``store/migrations/NNN_description.sql`` and are
applied in version order on startup. Applied versions are tracked in the
``schema_migrations`` table so each script runs once per database.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from ..core.logging import get_logger

if TYPE_CHECKING:
    import aiosqlite

logger = get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


@dataclass(frozen=True)
class Migration:
    """A migration script discovered on disk."""

    version: int
    description: str
    path: Path

    @classmethod
    def from_path(cls, path: Path) -> Migration | None:
        """
        Build a Migration from a filename like ``001_initial_schema.sql``.

        Returns:
            Migration, or None if the filename has no numeric prefix
        """
        prefix, _, rest = path.stem.partition("_")
        try:
            version = int(prefix)
        except ValueError:
            return None
        return cls(version=version, description=rest.replace("_", " ") or path.stem, path=path)


def discover_migrations(directory: Path = MIGRATIONS_DIR) -> list[Migration]:
    """List valid migration scripts in version order."""
    migrations = []
    for path in sorted(directory.glob("*.sql")):
        migration = Migration.from_path(path)
        if migration is None:
            logger.warning("Skipping invalid migration file: %s", path.name)
            continue
        migrations.append(migration)
    return sorted(migrations, key=lambda m: m.version)


class MigrationRunner:
    """Apply pending migrations to an open aiosqlite connection."""

    def __init__(self, db: aiosqlite.Connection, directory: Path = MIGRATIONS_DIR):
        self.db = db
        self.directory = directory

    async def run_migrations(self) -> int:
        """
        Apply pending migrations.

        Returns:
            Number of migrations applied
        """
        await self._ensure_migrations_table()
        current = await self.get_current_version()

        applied = 0
        for migration in discover_migrations(self.directory):
            if migration.version > current:
                await self._apply(migration)
                applied += 1

        if applied:
            logger.info("Applied %d database migration(s)", applied)
        return applied

    async def get_current_version(self) -> int:
        """Latest applied migration version, or 0 for a fresh database."""
        cursor = await self.db.execute("SELECT MAX(version) FROM schema_migrations")
        row = await cursor.fetchone()
        return row[0] if row and row[0] is not None else 0

    async def _ensure_migrations_table(self) -> None:
        await self.db.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL,
                description TEXT
            )
            """
        )
        await self.db.commit()

    async def _apply(self, migration: Migration) -> None:
        logger.info("Applying migration %03d: %s", migration.version, migration.description)

        await self.db.executescript(migration.path.read_text(encoding="utf-8"))
        await self.db.execute(
            "INSERT INTO schema_migrations (version, applied_at, description) VALUES (?, ?, ?)",
            (migration.version, int(time.time()), migration.description),
        )
        await self.db.commit()
