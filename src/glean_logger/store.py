"""SQLite-backed capped log store.

LocalLogStore keeps the most recent entries on disk so they can be inspected
after the fact (``glean-logger logs``) or re-sent. It is a ring buffer, not a
delivery queue: once ``max_entries`` is exceeded the oldest rows are evicted.

The database file is created with chmod 600.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from glean_logger.migrations import migrate_database
from glean_logger.transport.entry import LogEntry

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 100


class LocalLogStore:
    """Capped append-only store of recent log entries.

    Args:
        db_path: Path to the SQLite database file
        max_entries: Entries retained (default: 100)

    Example:
        >>> store = LocalLogStore(get_default_store_path())
        >>> store.append(LogEntry.create("info", "saved draft"))
        >>> [entry.message for entry in store.read_all()]
        ['saved draft']
    """

    def __init__(
        self,
        db_path: str | Path,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        if max_entries < 1:
            msg = f"max_entries must be at least 1, got {max_entries}"
            raise ValueError(msg)
        self.db_path = Path(db_path).expanduser().resolve()
        self.max_entries = max_entries
        self._conn: sqlite3.Connection | None = None

        self._ensure_database()

    def _ensure_database(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        is_new = not self.db_path.exists()

        conn = self._get_connection()
        migrate_database(conn)

        if is_new and self.db_path.exists():
            try:
                os.chmod(self.db_path, 0o600)  # noqa: PTH101
                logger.debug("Set log store permissions to 600: %s", self.db_path)
            except OSError as e:
                logger.warning("Could not set log store permissions: %s", e)

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run statements atomically: commit on success, roll back and re-raise on error."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # -------------------------------------------------------------------------
    # Entry Operations
    # -------------------------------------------------------------------------

    def append(self, entry: LogEntry) -> None:
        """Store an entry, evicting the oldest beyond ``max_entries``."""
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO log_entries (id, timestamp, level, source, entry_json)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    entry.timestamp,
                    entry.level.value,
                    entry.source.value,
                    json.dumps(entry.to_wire()),
                ),
            )
            evicted = conn.execute(
                """
                DELETE FROM log_entries
                WHERE seq NOT IN (
                    SELECT seq FROM log_entries ORDER BY seq DESC LIMIT ?
                )
                """,
                (self.max_entries,),
            ).rowcount
            if evicted:
                conn.execute(
                    "UPDATE store_stats SET value = value + ? WHERE name = 'evicted'",
                    (evicted,),
                )

    def read_all(self) -> list[LogEntry]:
        """Return stored entries ordered by timestamp, then insertion."""
        conn = self._get_connection()
        cursor = conn.execute(
            "SELECT entry_json FROM log_entries ORDER BY timestamp ASC, seq ASC"
        )
        entries: list[LogEntry] = []
        for row in cursor.fetchall():
            try:
                entries.append(LogEntry.model_validate_json(row["entry_json"]))
            except ValueError as e:
                logger.warning("Skipping unreadable stored log entry: %s", e)
        return entries

    def count(self) -> int:
        conn = self._get_connection()
        row = conn.execute("SELECT COUNT(*) FROM log_entries").fetchone()
        return int(row[0])

    def evicted_count(self) -> int:
        """Entries dropped by the cap since the store was created."""
        conn = self._get_connection()
        row = conn.execute("SELECT value FROM store_stats WHERE name = 'evicted'").fetchone()
        return int(row[0]) if row is not None else 0

    def clear(self) -> int:
        """Delete all stored entries.

        Returns:
            Number of entries removed
        """
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM log_entries")
            return cursor.rowcount
