"""Store, provider and sink adapters for Cursor Sync."""

from cursor_sync.connectors.http_provider import HttpRecordProvider
from cursor_sync.connectors.sqlite_sink import SQLiteRecordSink
from cursor_sync.connectors.sqlite_store import SQLiteCursorStore

__all__ = ["HttpRecordProvider", "SQLiteRecordSink", "SQLiteCursorStore"]
