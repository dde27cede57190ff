"""Persistent content-addressed cache for optimized images."""

from __future__ import annotations

import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from threading import Lock

logger = logging.getLogger(__name__)

CACHE_FILENAME = "cache.db"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS image_cache (
    key TEXT PRIMARY KEY,               -- SHA-256 of source bytes + optimizer options
    content BLOB NOT NULL,              -- optimized bytes
    created_at TEXT NOT NULL            -- ISO8601 UTC
);
"""


class ImageCache:
    """SQLite-backed image cache shared by concurrent pipelines.

    Entries survive across process runs. All access goes through one lock,
    which makes the cache a single writer; each call opens its own
    connection so the cache can be used from any thread.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        """Initialize the cache.

        Args:
            db_path: Path to the SQLite database. Defaults to .assetflow/cache.db
        """
        if db_path is None:
            db_path = Path.cwd() / ".assetflow" / CACHE_FILENAME
        self.db_path = db_path
        self._lock = Lock()
        self.hits = 0
        self.misses = 0
        self._ensure_db()

    def _ensure_db(self) -> None:
        """Ensure the database file and table exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock, self._connect() as conn:
            conn.executescript(SCHEMA_SQL)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=30)

    def get(self, key: str) -> bytes | None:
        """Return cached bytes for `key`, or None."""
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT content FROM image_cache WHERE key = ?", (key,)
            ).fetchone()
            if row is None:
                self.misses += 1
                return None
            self.hits += 1
            return bytes(row[0])

    def put(self, key: str, content: bytes) -> None:
        """Store bytes under `key`, replacing any previous entry."""
        with self._lock, self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO image_cache (key, content, created_at) "
                "VALUES (?, ?, ?)",
                (key, content, datetime.now(UTC).isoformat()),
            )

    def clear(self) -> int:
        """Delete every entry. Returns the number of entries removed."""
        with self._lock, self._connect() as conn:
            cursor = conn.execute("DELETE FROM image_cache")
            removed = cursor.rowcount
        logger.info("Cleared %d cached image(s) from %s", removed, self.db_path)
        return removed

    def __len__(self) -> int:
        with self._lock, self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM image_cache").fetchone()
            return int(row[0])
