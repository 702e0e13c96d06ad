"""Versioned schema migrations.

Each migration is a forward script plus an optional reverse script. The
ledger table ``schema_migrations`` records every applied version; it is
created unconditionally before any version check.

State per version: unapplied -> applying -> applied, or applying -> failed,
which stops the run. Versions applied earlier in the same run stay applied.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass

from .models import SchemaVersion, format_timestamp, utc_now

logger = logging.getLogger(__name__)

_LEDGER_SQL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    applied_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""


@dataclass(frozen=True)
class Migration:
    """A versioned schema change."""

    version: int
    name: str
    up: str
    down: str | None = None


MIGRATIONS: list[Migration] = [
    Migration(
        version=1,
        name="initial_schema",
        up="""
        CREATE TABLE IF NOT EXISTS releases (
            id INTEGER PRIMARY KEY,
            title TEXT NOT NULL,
            artist TEXT NOT NULL,
            year INTEGER,
            format TEXT,
            thumb_url TEXT,
            added_date TEXT NOT NULL,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS price_history (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            release_id INTEGER NOT NULL,
            price REAL NOT NULL,
            currency TEXT NOT NULL,
            condition TEXT NOT NULL,
            timestamp TEXT NOT NULL,
            listing_count INTEGER DEFAULT 0,
            FOREIGN KEY (release_id) REFERENCES releases(id)
        );

        CREATE INDEX IF NOT EXISTS idx_price_history_release_id
            ON price_history(release_id);
        CREATE INDEX IF NOT EXISTS idx_price_history_timestamp
            ON price_history(timestamp);
        """,
        down="""
        DROP TABLE IF EXISTS price_history;
        DROP TABLE IF EXISTS releases;
        """,
    ),
    Migration(
        version=2,
        name="add_collection_tracking",
        up="""
        CREATE TABLE IF NOT EXISTS collection_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            release_id INTEGER NOT NULL,
            folder_id INTEGER NOT NULL,
            folder_name TEXT NOT NULL,
            instance_id INTEGER UNIQUE,
            added_date TEXT NOT NULL,
            notes TEXT,
            FOREIGN KEY (release_id) REFERENCES releases(id)
        );

        CREATE TABLE IF NOT EXISTS wants (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            release_id INTEGER NOT NULL,
            added_date TEXT NOT NULL,
            notes TEXT,
            FOREIGN KEY (release_id) REFERENCES releases(id)
        );

        CREATE INDEX IF NOT EXISTS idx_collection_items_release_id
            ON collection_items(release_id);
        CREATE INDEX IF NOT EXISTS idx_collection_items_folder_id
            ON collection_items(folder_id);
        CREATE INDEX IF NOT EXISTS idx_wants_release_id
            ON wants(release_id);
        """,
        down="""
        DROP TABLE IF EXISTS wants;
        DROP TABLE IF EXISTS collection_items;
        """,
    ),
    Migration(
        version=3,
        name="add_wants_count_to_price_history",
        up="""
        ALTER TABLE price_history ADD COLUMN wants_count INTEGER DEFAULT 0;
        """,
        down="""
        ALTER TABLE price_history DROP COLUMN wants_count;
        """,
    ),
    Migration(
        version=4,
        name="unique_want_per_release",
        up="""
        DELETE FROM wants
        WHERE id NOT IN (SELECT MAX(id) FROM wants GROUP BY release_id);

        CREATE UNIQUE INDEX IF NOT EXISTS idx_wants_release_unique
            ON wants(release_id);
        """,
        down="""
        DROP INDEX IF EXISTS idx_wants_release_unique;
        """,
    ),
]


class MigrationError(RuntimeError):
    """A forward migration script failed."""

    def __init__(self, migration: Migration, cause: Exception) -> None:
        super().__init__(
            f"Failed to apply migration v{migration.version} "
            f"({migration.name}): {cause}"
        )
        self.migration = migration
        self.cause = cause


@dataclass
class MigrationStatus:
    """Snapshot of the ledger against the known migration list."""

    current_version: int
    latest_version: int
    migrations: list[tuple[Migration, bool]]

    @property
    def up_to_date(self) -> bool:
        return self.current_version >= self.latest_version

    @property
    def pending(self) -> list[Migration]:
        return [m for m, applied in self.migrations if not applied]


class SchemaMigrator:
    """Applies and rolls back migrations on an injected connection.

    Args:
        conn: The same sqlite3 connection the store writes through.
        migrations: Known migrations. Defaults to MIGRATIONS.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        migrations: list[Migration] | None = None,
    ) -> None:
        self._conn = conn
        self.migrations = sorted(
            migrations if migrations is not None else MIGRATIONS,
            key=lambda m: m.version,
        )
        versions = [m.version for m in self.migrations]
        if len(set(versions)) != len(versions):
            raise ValueError(f"Duplicate migration versions: {versions}")
        self._init_ledger()

    def _init_ledger(self) -> None:
        self._conn.executescript(_LEDGER_SQL)
        self._conn.commit()

    @property
    def latest_version(self) -> int:
        return self.migrations[-1].version if self.migrations else 0

    def get_current_version(self) -> int:
        """Highest applied version, 0 when nothing is applied."""
        row = self._conn.execute(
            "SELECT version FROM schema_migrations ORDER BY version DESC LIMIT 1"
        ).fetchone()
        return row["version"] if row else 0

    def applied_versions(self) -> list[SchemaVersion]:
        rows = self._conn.execute(
            "SELECT version, name, applied_at FROM schema_migrations ORDER BY version"
        ).fetchall()
        return [
            SchemaVersion(
                version=r["version"], name=r["name"], applied_at=r["applied_at"]
            )
            for r in rows
        ]

    def status(self) -> MigrationStatus:
        current = self.get_current_version()
        return MigrationStatus(
            current_version=current,
            latest_version=self.latest_version,
            migrations=[(m, m.version <= current) for m in self.migrations],
        )

    def migrate(self) -> list[Migration]:
        """Apply every pending migration in ascending version order.

        Returns:
            The migrations applied by this call (empty when up to date).

        Raises:
            MigrationError: On the first failing script. Later migrations
                are not attempted and earlier ones stay applied.
        """
        current = self.get_current_version()
        pending = [m for m in self.migrations if m.version > current]
        if not pending:
            logger.debug("Schema up to date at v%d", current)
            return []

        logger.info("Running %d database migrations...", len(pending))
        applied: list[Migration] = []
        for migration in pending:
            try:
                self._conn.executescript(migration.up)
                self._conn.execute(
                    "INSERT INTO schema_migrations (version, name, applied_at) "
                    "VALUES (?, ?, ?)",
                    (migration.version, migration.name, format_timestamp(utc_now())),
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                logger.error(
                    "Failed to apply migration v%d %s: %s",
                    migration.version, migration.name, exc,
                )
                raise MigrationError(migration, exc) from exc

            logger.info("Applied migration v%d: %s", migration.version, migration.name)
            applied.append(migration)

        return applied

    def rollback(self, target_version: int) -> list[Migration]:
        """Revert migrations in (target_version, current], newest first.

        Migrations without a reverse script only lose their ledger row.

        Returns:
            The migrations rolled back.
        """
        current = self.get_current_version()
        to_revert = [
            m for m in reversed(self.migrations)
            if target_version < m.version <= current
        ]
        for migration in to_revert:
            if migration.down:
                self._conn.executescript(migration.down)
            self._conn.execute(
                "DELETE FROM schema_migrations WHERE version = ?",
                (migration.version,),
            )
            self._conn.commit()
            logger.info("Rolled back migration v%d: %s", migration.version, migration.name)
        return to_revert
