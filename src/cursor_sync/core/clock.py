"""Injectable clocks."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from cursor_sync.core.models import ensure_utc


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """
    Clock that only moves when told to.

    Example:
        clock = ManualClock(datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc))
        clock.advance(minutes=5)
    """

    def __init__(self, start: datetime) -> None:
        self._now = ensure_utc(start)

    def now(self) -> datetime:
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = ensure_utc(moment)

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> datetime:
        """Move forward by ``delta`` or by timedelta keyword arguments."""
        self._now += delta if delta is not None else timedelta(**kwargs)
        return self._now
