"""SQLite connection management."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"


def get_connection(db_path: str | Path) -> sqlite3.Connection:
    """Get a SQLite connection with row factory and foreign keys enabled.

    Args:
        db_path: Database file, or ":memory:" for a throwaway database.

    Returns:
        sqlite3.Connection with Row factory.
    """
    path = str(db_path)
    if path != MEMORY_DB:
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    if path != MEMORY_DB:
        conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    logger.debug("Opened database %s", path)
    return conn
