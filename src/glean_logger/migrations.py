"""Versioned schema for the local log store.

Each migration is a SQL script keyed by the version it produces. Applied
versions are recorded in ``schema_version`` so opening an existing store only
runs what is missing.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import sqlite3

logger = logging.getLogger(__name__)

_V1_ENTRIES = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- seq keeps insertion order for entries sharing a timestamp
CREATE TABLE IF NOT EXISTS log_entries (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    level TEXT NOT NULL,
    source TEXT NOT NULL,
    entry_json TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_log_entries_timestamp ON log_entries(timestamp);
"""

_V2_STATS = """
CREATE TABLE IF NOT EXISTS store_stats (
    name TEXT PRIMARY KEY,
    value INTEGER NOT NULL DEFAULT 0
);

INSERT OR IGNORE INTO store_stats (name, value) VALUES ('evicted', 0);
"""

MIGRATIONS: dict[int, tuple[str, str]] = {
    1: ("log entries table", _V1_ENTRIES),
    2: ("eviction counter", _V2_STATS),
}

CURRENT_SCHEMA_VERSION = max(MIGRATIONS)


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Highest applied version, or 0 for an empty database."""
    exists = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'schema_version'"
    ).fetchone()
    if exists is None:
        return 0
    (version,) = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return version or 0


def migrate_database(
    conn: sqlite3.Connection,
    target_version: int | None = None,
) -> int:
    """Bring the store schema up to ``target_version``.

    Args:
        conn: Open store connection
        target_version: Version to stop at (default: CURRENT_SCHEMA_VERSION)

    Returns:
        The schema version after migrating

    Raises:
        ValueError: If target_version is outside 0..CURRENT_SCHEMA_VERSION
    """
    target = CURRENT_SCHEMA_VERSION if target_version is None else target_version
    if not 0 <= target <= CURRENT_SCHEMA_VERSION:
        msg = f"Invalid target version: {target} (current max: {CURRENT_SCHEMA_VERSION})"
        raise ValueError(msg)

    version = get_schema_version(conn)
    for next_version in range(version + 1, target + 1):
        description, script = MIGRATIONS[next_version]
        conn.executescript(script)
        conn.execute(
            "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
            (next_version,),
        )
        conn.commit()
        logger.info("Log store migrated to v%d: %s", next_version, description)
        version = next_version

    return version
