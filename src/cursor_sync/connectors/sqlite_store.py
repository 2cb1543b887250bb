"""
SQLite Cursor Store.

Durable cursor persistence with:
- One row per (source_type, source_id, target_type)
- Compare-and-swap as a single conditional UPDATE
- Race-free seeding via INSERT OR IGNORE
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

from cursor_sync.config import StoreConfig
from cursor_sync.core.errors import StorageError
from cursor_sync.core.models import Cursor, CursorKey, ensure_utc
from cursor_sync.core.store import CasResult, CursorStore


SCHEMA = """
CREATE TABLE IF NOT EXISTS sync_cursors (
    source_type TEXT NOT NULL,
    source_id   TEXT NOT NULL,
    target_type TEXT NOT NULL,
    watermark   TEXT NOT NULL,
    version     INTEGER NOT NULL DEFAULT 0,
    updated_at  TEXT NOT NULL,
    PRIMARY KEY (source_type, source_id, target_type)
)
"""


class SQLiteCursorStore(CursorStore):
    """
    Cursor store backed by a SQLite file.

    Each operation opens its own connection, so the store can be shared by
    worker threads. Timestamps are stored as UTC ISO-8601 text.

    Example:
        store = SQLiteCursorStore(Path("cursors.db"))
        key = CursorKey("vehicle", "42", "trips")

        cursor = store.create_if_absent(key, seed)
        if store.compare_and_swap(key, cursor.version, new_watermark) is CasResult.OK:
            ...
    """

    def __init__(
        self,
        path: Path | str,
        busy_timeout_seconds: float = 30.0,
    ) -> None:
        """
        Initialize SQLite cursor store.

        Args:
            path: Path to the database file (created if missing)
            busy_timeout_seconds: How long to wait on a locked database
        """
        self.path = Path(path)
        self.busy_timeout_seconds = busy_timeout_seconds
        self._initialized = False
        self._init_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: StoreConfig) -> "SQLiteCursorStore":
        return cls(config.path, busy_timeout_seconds=config.busy_timeout_seconds)

    @contextmanager
    def connection(self, write: bool = False) -> Generator[sqlite3.Connection, None, None]:
        """
        Get a database connection with proper cleanup.

        Write connections start with BEGIN IMMEDIATE so the write lock is
        taken (or waited for) before anything is read.
        """
        try:
            conn = self._create_connection()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open cursor store {self.path}: {e}") from e

        try:
            if write:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            if conn.in_transaction:
                conn.execute("COMMIT")
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise StorageError(f"Cursor store error: {e}") from e
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def _create_connection(self) -> sqlite3.Connection:
        """Create a new database connection."""
        if self.path.parent and not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            self.path,
            timeout=self.busy_timeout_seconds,
            check_same_thread=False,
            isolation_level=None,  # transactions are managed explicitly
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA synchronous=FULL")

        if not self._initialized:
            with self._init_lock:
                if not self._initialized:
                    # WAL is persistent, so it only needs setting once per file
                    conn.execute("PRAGMA journal_mode=WAL")
                    conn.execute(SCHEMA)
                    self._initialized = True

        return conn

    def get(self, key: CursorKey) -> Cursor | None:
        with self.connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM sync_cursors
                WHERE source_type = ? AND source_id = ? AND target_type = ?
                """,
                (key.source_type, key.source_id, key.target_type),
            ).fetchone()
        return self._row_to_cursor(row) if row else None

    def compare_and_swap(
        self,
        key: CursorKey,
        expected_version: int,
        new_watermark: datetime,
    ) -> CasResult:
        with self.connection(write=True) as conn:
            cursor = conn.execute(
                """
                UPDATE sync_cursors
                SET watermark = ?, version = version + 1, updated_at = ?
                WHERE source_type = ? AND source_id = ? AND target_type = ?
                AND version = ?
                """,
                (
                    _to_text(new_watermark),
                    _to_text(datetime.now(timezone.utc)),
                    key.source_type,
                    key.source_id,
                    key.target_type,
                    expected_version,
                ),
            )
            if cursor.rowcount == 1:
                return CasResult.OK

            exists = conn.execute(
                """
                SELECT 1 FROM sync_cursors
                WHERE source_type = ? AND source_id = ? AND target_type = ?
                """,
                (key.source_type, key.source_id, key.target_type),
            ).fetchone()
        return CasResult.CONFLICT if exists else CasResult.NOT_FOUND

    def create_if_absent(self, key: CursorKey, initial_watermark: datetime) -> Cursor:
        with self.connection(write=True) as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO sync_cursors
                (source_type, source_id, target_type, watermark, version, updated_at)
                VALUES (?, ?, ?, ?, 0, ?)
                """,
                (
                    key.source_type,
                    key.source_id,
                    key.target_type,
                    _to_text(initial_watermark),
                    _to_text(datetime.now(timezone.utc)),
                ),
            )
            row = conn.execute(
                """
                SELECT * FROM sync_cursors
                WHERE source_type = ? AND source_id = ? AND target_type = ?
                """,
                (key.source_type, key.source_id, key.target_type),
            ).fetchone()

        if row is None:
            raise StorageError(f"Cursor {key} missing right after seeding", key=str(key))
        return self._row_to_cursor(row)

    def list_cursors(self) -> list[Cursor]:
        with self.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM sync_cursors
                ORDER BY source_type, source_id, target_type
                """
            ).fetchall()
        return [self._row_to_cursor(row) for row in rows]

    def _row_to_cursor(self, row: sqlite3.Row) -> Cursor:
        try:
            return Cursor(
                key=CursorKey(row["source_type"], row["source_id"], row["target_type"]),
                watermark=datetime.fromisoformat(row["watermark"]),
                version=int(row["version"]),
                updated_at=datetime.fromisoformat(row["updated_at"]),
            )
        except (TypeError, ValueError) as e:
            key = f"{row['source_type']}:{row['source_id']}->{row['target_type']}"
            raise StorageError(f"Corrupt cursor row {key}: {e}", key=key) from e


def _to_text(value: datetime) -> str:
    return ensure_utc(value).isoformat()
