"""Tests for cursor stores."""

import sqlite3
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from conftest import utc
from cursor_sync.connectors.sqlite_store import SQLiteCursorStore
from cursor_sync.core.errors import StorageError
from cursor_sync.core.models import CursorKey
from cursor_sync.core.store import CasResult, CursorStore, InMemoryCursorStore


KEY = CursorKey("vehicle", "42", "trips")


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request: pytest.FixtureRequest, tmp_path: Path) -> CursorStore:
    """Each store implementation."""
    if request.param == "memory":
        return InMemoryCursorStore()
    return SQLiteCursorStore(tmp_path / "cursors.db")


class TestCursorStoreContract:
    """Behavior every CursorStore must share."""

    def test_get_missing(self, any_store: CursorStore) -> None:
        """Test NotFound is None."""
        assert any_store.get(KEY) is None

    def test_create_if_absent_seeds(self, any_store: CursorStore) -> None:
        """Test seeding creates version 0 at the given watermark."""
        cursor = any_store.create_if_absent(KEY, utc(10))
        assert cursor.watermark == utc(10)
        assert cursor.version == 0
        assert any_store.get(KEY) == cursor

    def test_create_if_absent_is_idempotent(self, any_store: CursorStore) -> None:
        """Test a second seed observes the first."""
        first = any_store.create_if_absent(KEY, utc(10))
        second = any_store.create_if_absent(KEY, utc(11))
        assert second.watermark == first.watermark == utc(10)

    def test_cas_applies_with_current_version(self, any_store: CursorStore) -> None:
        """Test a CAS with the observed version commits and bumps the version."""
        cursor = any_store.create_if_absent(KEY, utc(10))
        assert any_store.compare_and_swap(KEY, cursor.version, utc(10, 5)) == CasResult.OK

        updated = any_store.get(KEY)
        assert updated is not None
        assert updated.watermark == utc(10, 5)
        assert updated.version == cursor.version + 1

    def test_stale_cas_conflicts_without_writing(self, any_store: CursorStore) -> None:
        """Test two writers reading V0: the second must not overwrite V1."""
        v0 = any_store.create_if_absent(KEY, utc(10))

        assert any_store.compare_and_swap(KEY, v0.version, utc(10, 5)) == CasResult.OK
        assert any_store.compare_and_swap(KEY, v0.version, utc(10, 1)) == CasResult.CONFLICT

        current = any_store.get(KEY)
        assert current is not None
        assert current.watermark == utc(10, 5)
        assert current.version == 1

    def test_cas_missing_cursor(self, any_store: CursorStore) -> None:
        """Test CAS on an unknown key reports NOT_FOUND."""
        assert any_store.compare_and_swap(KEY, 0, utc(10)) == CasResult.NOT_FOUND
        assert any_store.get(KEY) is None

    def test_cas_may_move_watermark_back(self, any_store: CursorStore) -> None:
        """Test the store does not second-guess a regression to an open record."""
        cursor = any_store.create_if_absent(KEY, utc(10))
        assert any_store.compare_and_swap(KEY, cursor.version, utc(9)) == CasResult.OK
        assert any_store.get(KEY).watermark == utc(9)

    def test_keys_are_independent(self, any_store: CursorStore) -> None:
        """Test the target type is part of the key."""
        other = CursorKey("vehicle", "42", "alerts")
        any_store.create_if_absent(KEY, utc(10))
        any_store.create_if_absent(other, utc(8))

        assert any_store.get(KEY).watermark == utc(10)
        assert any_store.get(other).watermark == utc(8)
        assert [c.key for c in any_store.list_cursors()] == [other, KEY]

    def test_concurrent_seeding_has_one_winner(self, any_store: CursorStore) -> None:
        """Test racing seeds all observe the same cursor."""
        seeds = [utc(10, minute) for minute in range(8)]
        with ThreadPoolExecutor(max_workers=8) as pool:
            cursors = list(pool.map(lambda s: any_store.create_if_absent(KEY, s), seeds))

        assert len({c.watermark for c in cursors}) == 1
        assert len(any_store.list_cursors()) == 1

    def test_concurrent_cas_has_one_winner(self, any_store: CursorStore) -> None:
        """Test racing writers on one version: exactly one commits."""
        cursor = any_store.create_if_absent(KEY, utc(10))
        targets = [utc(11, minute) for minute in range(8)]
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(
                pool.map(lambda t: any_store.compare_and_swap(KEY, cursor.version, t), targets)
            )

        assert results.count(CasResult.OK) == 1
        assert results.count(CasResult.CONFLICT) == 7
        assert any_store.get(KEY).version == 1


class TestSQLiteCursorStore:
    """SQLite-specific behavior."""

    def test_persists_across_instances(self, tmp_path: Path) -> None:
        """Test cursors survive reopening the database."""
        path = tmp_path / "cursors.db"
        SQLiteCursorStore(path).create_if_absent(KEY, utc(10))

        reopened = SQLiteCursorStore(path).get(KEY)
        assert reopened is not None
        assert reopened.watermark == utc(10)

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        """Test the database directory is created on demand."""
        store = SQLiteCursorStore(tmp_path / "nested" / "dir" / "cursors.db")
        store.create_if_absent(KEY, utc(10))
        assert (tmp_path / "nested" / "dir" / "cursors.db").exists()

    def test_storage_errors_are_wrapped(self, tmp_path: Path) -> None:
        """Test sqlite failures surface as StorageError."""
        path = tmp_path / "cursors.db"
        store = SQLiteCursorStore(path)
        store.create_if_absent(KEY, utc(10))

        conn = sqlite3.connect(path)
        conn.execute("DROP TABLE sync_cursors")
        conn.commit()
        conn.close()

        with pytest.raises(StorageError):
            store.get(KEY)

    def test_timestamps_round_trip_as_utc(self, tmp_path: Path) -> None:
        """Test stored watermarks come back timezone-aware."""
        store = SQLiteCursorStore(tmp_path / "cursors.db")
        cursor = store.create_if_absent(KEY, utc(10, 2, 3))
        assert cursor.watermark.tzinfo is not None
        assert cursor.watermark == utc(10, 2, 3)

    def test_corrupt_row_raises_storage_error(self, tmp_path: Path) -> None:
        """Test an undecodable watermark surfaces as StorageError."""
        path = tmp_path / "cursors.db"
        store = SQLiteCursorStore(path)
        store.create_if_absent(KEY, utc(10))

        conn = sqlite3.connect(path)
        conn.execute("UPDATE sync_cursors SET watermark = 'garbage'")
        conn.commit()
        conn.close()

        with pytest.raises(StorageError, match="Corrupt cursor row"):
            store.get(KEY)
        with pytest.raises(StorageError):
            store.list_cursors()
