"""Collection store: items, observations, memberships and wants.

Every write is its own transaction. Callers that write an item and its
membership issue two calls; a crash in between leaves an item without
membership, which the next (idempotent) sync repairs.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta
from pathlib import Path

from .connection import get_connection
from .migrations import SchemaMigrator
from .models import (
    CollectionMembership,
    FolderSummary,
    Item,
    Observation,
    WantEntry,
    format_timestamp,
    utc_now,
)

logger = logging.getLogger(__name__)


def format_clause(column: str = "r.format") -> str:
    """SQL fragment matching a format filter as a case-insensitive substring.

    Binds the filter twice so a NULL filter disables the clause.
    """
    return f"(? IS NULL OR {column} LIKE '%' || ? || '%')"


class PriceStore:
    """Single-writer SQLite store for the tracker.

    Usage:
        with PriceStore.open("data/prices.db") as store:
            store.upsert_item(item)
            store.append_observation(obs)
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @classmethod
    def open(cls, db_path: str | Path, migrate: bool = True) -> PriceStore:
        """Open a store, applying pending migrations unless told not to."""
        conn = get_connection(db_path)
        if migrate:
            SchemaMigrator(conn).migrate()
        return cls(conn)

    @property
    def connection(self) -> sqlite3.Connection:
        """The underlying connection, for injecting into SchemaMigrator."""
        return self._conn

    # --- Writes ---

    def upsert_item(self, item: Item) -> None:
        """Insert or update a release by id. added_date keeps its first value."""
        logger.debug("Upsert release %d - %s", item.id, item.title)
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO releases (
                    id, title, artist, year, format, thumb_url, added_date, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title=excluded.title,
                    artist=excluded.artist,
                    year=excluded.year,
                    format=excluded.format,
                    thumb_url=excluded.thumb_url,
                    updated_at=excluded.updated_at
                """,
                (
                    item.id,
                    item.title,
                    item.artist,
                    item.year,
                    item.format,
                    item.thumb_url,
                    item.added_date or format_timestamp(utc_now()),
                    format_timestamp(utc_now()),
                ),
            )

    def append_observation(self, obs: Observation) -> int:
        """Append an observation and return its row id.

        Raises:
            sqlite3.IntegrityError: The release does not exist.
        """
        logger.debug(
            "Price for release %d: %s %.2f (%d wants)",
            obs.release_id, obs.currency, obs.price, obs.wants_count,
        )
        with self._conn:
            cur = self._conn.execute(
                """
                INSERT INTO price_history (
                    release_id, price, currency, condition, timestamp,
                    listing_count, wants_count
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    obs.release_id,
                    obs.price,
                    obs.currency,
                    obs.condition,
                    obs.timestamp,
                    obs.listing_count,
                    obs.wants_count or 0,
                ),
            )
        return cur.lastrowid

    def upsert_membership(self, membership: CollectionMembership) -> None:
        """Insert or update a folder membership keyed by instance id."""
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO collection_items (
                    release_id, folder_id, folder_name, instance_id, added_date, notes
                )
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(instance_id) DO UPDATE SET
                    release_id=excluded.release_id,
                    folder_id=excluded.folder_id,
                    folder_name=excluded.folder_name,
                    added_date=excluded.added_date,
                    notes=excluded.notes
                """,
                (
                    membership.release_id,
                    membership.folder_id,
                    membership.folder_name,
                    membership.instance_id,
                    membership.added_date,
                    membership.notes,
                ),
            )

    def upsert_want(self, want: WantEntry) -> None:
        """Insert or update the single wantlist entry for a release."""
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO wants (release_id, added_date, notes)
                VALUES (?, ?, ?)
                ON CONFLICT(release_id) DO UPDATE SET
                    added_date=excluded.added_date,
                    notes=excluded.notes
                """,
                (want.release_id, want.added_date, want.notes),
            )

    # --- Reads ---

    def get_item(self, release_id: int) -> Item | None:
        row = self._conn.execute(
            "SELECT * FROM releases WHERE id = ?", (release_id,)
        ).fetchone()
        return Item.from_row(row) if row else None

    def all_items(self, format_filter: str | None = None) -> list[Item]:
        rows = self._conn.execute(
            f"""
            SELECT * FROM releases r
            WHERE {format_clause()}
            ORDER BY r.artist, r.title
            """,
            (format_filter, format_filter),
        ).fetchall()
        return [Item.from_row(r) for r in rows]

    def search_items(
        self, query: str, format_filter: str | None = None
    ) -> list[Item]:
        """Items whose artist or title contains the query (case-insensitive)."""
        needle = query.lower()
        return [
            item for item in self.all_items(format_filter)
            if needle in item.artist.lower() or needle in item.title.lower()
        ]

    def latest_observation(self, release_id: int) -> Observation | None:
        row = self._conn.execute(
            """
            SELECT * FROM price_history
            WHERE release_id = ?
            ORDER BY timestamp DESC, id DESC
            LIMIT 1
            """,
            (release_id,),
        ).fetchone()
        return Observation.from_row(row) if row else None

    def observations_since(
        self,
        release_id: int,
        window_days: float = 30,
        now: datetime | None = None,
    ) -> list[Observation]:
        """Observations inside the trailing window, oldest first."""
        cutoff = format_timestamp((now or utc_now()) - timedelta(days=window_days))
        rows = self._conn.execute(
            """
            SELECT * FROM price_history
            WHERE release_id = ?
              AND timestamp >= ?
            ORDER BY timestamp ASC, id ASC
            """,
            (release_id, cutoff),
        ).fetchall()
        return [Observation.from_row(r) for r in rows]

    # Name used by the history command.
    price_history = observations_since

    def collection_release_ids(self) -> list[int]:
        """Distinct release ids that have at least one folder membership."""
        rows = self._conn.execute(
            "SELECT DISTINCT release_id FROM collection_items ORDER BY release_id"
        ).fetchall()
        return [r["release_id"] for r in rows]

    def collection_folders(self) -> list[FolderSummary]:
        rows = self._conn.execute(
            """
            SELECT folder_id, folder_name, COUNT(*) AS count
            FROM collection_items
            GROUP BY folder_id, folder_name
            ORDER BY folder_id
            """
        ).fetchall()
        return [
            FolderSummary(
                folder_id=r["folder_id"], folder_name=r["folder_name"], count=r["count"]
            )
            for r in rows
        ]

    def wants_count(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) AS count FROM wants").fetchone()
        return row["count"]

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> PriceStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
