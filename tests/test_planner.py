"""Tests for window planning."""

from datetime import timedelta

import pytest

from conftest import utc
from cursor_sync.config import WindowConfig
from cursor_sync.core.models import Cursor, CursorKey, SyncWindow
from cursor_sync.core.planner import WindowPlanner, plan_window


KEY = CursorKey("vehicle", "42", "trips")
DEFAULT = timedelta(hours=1)
MAX = timedelta(days=1)


def cursor_at(watermark):
    return Cursor(key=KEY, watermark=watermark, version=3, updated_at=watermark)


class TestPlanWindow:
    """Test the pure plan_window function."""

    def test_no_cursor_uses_default_lookback(self) -> None:
        """Test a first sync covers the default lookback."""
        window = plan_window(None, utc(12), DEFAULT, MAX)
        assert window.start == utc(11)
        assert window.end == utc(12)
        assert not window.clamped

    def test_starts_at_watermark(self) -> None:
        """Test an existing cursor's watermark becomes the window start."""
        window = plan_window(cursor_at(utc(10)), utc(10, 5), DEFAULT, MAX)
        assert window == SyncWindow(start=utc(10), end=utc(10, 5))

    def test_clamps_lagging_cursor_and_reports_gap(self) -> None:
        """Test a cursor older than max lookback is clamped with a gap."""
        watermark = utc(12) - timedelta(days=3)
        window = plan_window(cursor_at(watermark), utc(12), DEFAULT, MAX)

        assert window.start == utc(12) - MAX
        assert window.end == utc(12)
        assert window.clamped
        assert window.gap_start == watermark
        assert window.gap == timedelta(days=2)

    def test_exact_max_lookback_is_not_clamped(self) -> None:
        """Test a lag equal to max lookback is still fetched in full."""
        watermark = utc(12) - MAX
        window = plan_window(cursor_at(watermark), utc(12), DEFAULT, MAX)
        assert window.start == watermark
        assert not window.clamped

    def test_watermark_ahead_of_now_gives_empty_window(self) -> None:
        """Test clock skew never produces an inverted window."""
        window = plan_window(cursor_at(utc(13)), utc(12), DEFAULT, MAX)
        assert window.start == window.end == utc(13)
        assert window.duration == timedelta(0)

    def test_deterministic(self) -> None:
        """Test equal inputs give equal windows."""
        cursor = cursor_at(utc(9))
        assert plan_window(cursor, utc(12), DEFAULT, MAX) == plan_window(
            cursor, utc(12), DEFAULT, MAX
        )


class TestWindowPlanner:
    """Test the configured planner."""

    def test_uses_config(self) -> None:
        """Test planner picks lookbacks from WindowConfig."""
        planner = WindowPlanner(
            WindowConfig(default_lookback=timedelta(minutes=15), max_lookback=timedelta(hours=2))
        )
        assert planner.plan(None, utc(12)).start == utc(11, 45)
        assert planner.plan(cursor_at(utc(6)), utc(12)).start == utc(10)

    def test_seed_watermark(self) -> None:
        """Test a seeded cursor plans the same window as no cursor."""
        planner = WindowPlanner()
        seeded = cursor_at(planner.seed_watermark(utc(12)))
        assert planner.plan(seeded, utc(12)) == planner.plan(None, utc(12))


class TestSyncWindow:
    """Test SyncWindow value object."""

    def test_rejects_inverted_window(self) -> None:
        """Test end before start is rejected."""
        with pytest.raises(ValueError, match="precedes"):
            SyncWindow(start=utc(12), end=utc(11))

    def test_contains_is_half_open(self) -> None:
        """Test start is inclusive and end exclusive."""
        window = SyncWindow(start=utc(10), end=utc(11))
        assert window.contains(utc(10))
        assert not window.contains(utc(11))
