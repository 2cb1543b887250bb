"""
Cursor Store - Versioned watermark persistence.

Every write is a compare-and-swap on the cursor's version, so two
writers for the same key can never clobber each other: the one holding
a stale version gets CONFLICT and nothing is written.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum

from cursor_sync.core.models import Cursor, CursorKey, ensure_utc


class CasResult(str, Enum):
    """Outcome of a compare-and-swap."""

    OK = "ok"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


class CursorStore(ABC):
    """
    Storage contract for cursors.

    Implementations raise StorageError for backend failures. A caller may
    only assume the watermark moved when compare_and_swap returned OK.
    """

    @abstractmethod
    def get(self, key: CursorKey) -> Cursor | None:
        """Return the committed cursor, or None if none exists yet."""

    @abstractmethod
    def compare_and_swap(
        self,
        key: CursorKey,
        expected_version: int,
        new_watermark: datetime,
    ) -> CasResult:
        """Replace the watermark only if the stored version is ``expected_version``."""

    @abstractmethod
    def create_if_absent(self, key: CursorKey, initial_watermark: datetime) -> Cursor:
        """Seed a cursor; when one already exists, return it unchanged."""

    @abstractmethod
    def list_cursors(self) -> list[Cursor]:
        """Return every stored cursor ordered by key."""

    def close(self) -> None:
        """Release backend resources."""

    def __enter__(self) -> "CursorStore":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class InMemoryCursorStore(CursorStore):
    """
    Thread-safe in-process store.

    Useful for embedding and tests; state is lost with the process.
    """

    def __init__(self) -> None:
        self._cursors: dict[CursorKey, Cursor] = {}
        self._lock = threading.Lock()

    def get(self, key: CursorKey) -> Cursor | None:
        with self._lock:
            return self._cursors.get(key)

    def compare_and_swap(
        self,
        key: CursorKey,
        expected_version: int,
        new_watermark: datetime,
    ) -> CasResult:
        with self._lock:
            current = self._cursors.get(key)
            if current is None:
                return CasResult.NOT_FOUND
            if current.version != expected_version:
                return CasResult.CONFLICT
            self._cursors[key] = Cursor(
                key=key,
                watermark=ensure_utc(new_watermark),
                version=current.version + 1,
                updated_at=datetime.now(timezone.utc),
            )
            return CasResult.OK

    def create_if_absent(self, key: CursorKey, initial_watermark: datetime) -> Cursor:
        with self._lock:
            existing = self._cursors.get(key)
            if existing is not None:
                return existing
            cursor = Cursor(
                key=key,
                watermark=ensure_utc(initial_watermark),
                version=0,
                updated_at=datetime.now(timezone.utc),
            )
            self._cursors[key] = cursor
            return cursor

    def list_cursors(self) -> list[Cursor]:
        with self._lock:
            cursors = list(self._cursors.values())
        return sorted(
            cursors,
            key=lambda c: (c.key.source_type, c.key.source_id, c.key.target_type),
        )
