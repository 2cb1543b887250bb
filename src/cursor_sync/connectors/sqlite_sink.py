"""
SQLite Record Sink.

Idempotent downstream writer: records are upserted keyed on record_id,
so republishing an overlapping window leaves one row per record holding
its latest snapshot.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from cursor_sync.config import SinkConfig
from cursor_sync.core.errors import PublishError
from cursor_sync.core.models import UpstreamRecord
from cursor_sync.utils.logger import get_logger

logger = get_logger(__name__)


class SQLiteRecordSink:
    """
    Sink upserting records into a SQLite table.

    Example:
        sink = SQLiteRecordSink(Path("records.db"), table="trips")
        await sink.publish(records)
    """

    def __init__(self, path: Path | str, table: str = "records") -> None:
        self.path = Path(path)
        self.table = table

    @classmethod
    def from_config(cls, config: SinkConfig) -> "SQLiteRecordSink":
        return cls(config.path, table=config.table)

    async def publish(self, records: Sequence[UpstreamRecord]) -> None:
        """Upsert ``records``; raises PublishError on failure."""
        await asyncio.to_thread(self.upsert, records)

    def upsert(self, records: Sequence[UpstreamRecord]) -> int:
        """Blocking upsert. Returns the number of rows written."""
        if not records:
            return 0

        published_at = datetime.now(timezone.utc).isoformat()
        rows = [
            (
                record.record_id,
                _iso(record.record_start),
                _iso(record.record_end),
                json.dumps(dict(record.payload), default=str),
                published_at,
            )
            for record in records
        ]

        sql = f"""
            INSERT INTO "{self.table}"
            (record_id, record_start, record_end, payload, published_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(record_id) DO UPDATE SET
                record_start = excluded.record_start,
                record_end = excluded.record_end,
                payload = excluded.payload,
                published_at = excluded.published_at
        """

        try:
            conn = self._connect()
        except (sqlite3.Error, OSError) as e:
            raise PublishError(f"Cannot open sink {self.path}: {e}") from e

        try:
            conn.executemany(sql, rows)
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PublishError(f"Upsert into {self.table} failed: {e}") from e
        finally:
            conn.close()

        logger.debug("Upserted %d records into %s", len(rows), self.table)
        return len(rows)

    def count(self) -> int:
        """Number of distinct records held by the sink."""
        conn = self._connect()
        try:
            row = conn.execute(f'SELECT COUNT(*) FROM "{self.table}"').fetchone()
            return row[0] if row else 0
        finally:
            conn.close()

    def get(self, record_id: str) -> dict[str, Any] | None:
        """Fetch a stored record's row."""
        conn = self._connect()
        try:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                f'SELECT * FROM "{self.table}" WHERE record_id = ?',
                (record_id,),
            ).fetchone()
            if row is None:
                return None
            data = dict(row)
            data["payload"] = json.loads(data["payload"])
            return data
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path, timeout=30.0)
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS "{self.table}" (
                record_id    TEXT PRIMARY KEY,
                record_start TEXT,
                record_end   TEXT,
                payload      TEXT NOT NULL,
                published_at TEXT NOT NULL
            )
            """
        )
        return conn


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
