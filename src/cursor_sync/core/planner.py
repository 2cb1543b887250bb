"""Window planning: which time range the next fetch asks for."""

from __future__ import annotations

from datetime import datetime, timedelta

from cursor_sync.config import WindowConfig
from cursor_sync.core.models import Cursor, SyncWindow, ensure_utc


def plan_window(
    cursor: Cursor | None,
    now: datetime,
    default_lookback: timedelta,
    max_lookback: timedelta,
) -> SyncWindow:
    """
    Compute the ``[start, now)`` window for the next fetch.

    Without a cursor the window covers ``default_lookback``. A cursor lagging
    more than ``max_lookback`` is clamped; the window then records the
    dropped range through ``gap_start`` so the caller can alert or schedule
    a backfill. A watermark ahead of ``now`` gives an empty window at the
    watermark rather than an inverted one.
    """
    now = ensure_utc(now)
    if cursor is None:
        return SyncWindow(start=now - default_lookback, end=now)

    watermark = cursor.watermark
    if watermark >= now:
        return SyncWindow(start=watermark, end=watermark)

    if now - watermark > max_lookback:
        return SyncWindow(start=now - max_lookback, end=now, gap_start=watermark)

    return SyncWindow(start=watermark, end=now)


class WindowPlanner:
    """Plans windows using configured lookbacks."""

    def __init__(self, config: WindowConfig | None = None) -> None:
        self.config = config or WindowConfig()

    def plan(self, cursor: Cursor | None, now: datetime) -> SyncWindow:
        return plan_window(
            cursor,
            now,
            self.config.default_lookback,
            self.config.max_lookback,
        )

    def seed_watermark(self, now: datetime) -> datetime:
        """Watermark given to a cursor created on its first sync."""
        return ensure_utc(now) - self.config.default_lookback
