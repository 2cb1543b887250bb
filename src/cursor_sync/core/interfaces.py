"""Collaborator contracts consumed by the sync engine."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence, runtime_checkable

from cursor_sync.core.models import SyncWindow, UpstreamRecord


@runtime_checkable
class Clock(Protocol):
    """Source of the current time, in the same clock domain as records."""

    def now(self) -> datetime: ...


@runtime_checkable
class RecordProvider(Protocol):
    """
    Upstream client returning every record overlapping a window.

    Raises TransientFetchError or PermanentFetchError on failure.
    """

    async def fetch(self, window: SyncWindow) -> Sequence[UpstreamRecord]: ...


@runtime_checkable
class RecordSink(Protocol):
    """
    Downstream writer.

    Must be idempotent under at-least-once delivery: overlapping windows
    are republished after crashes and while records stay open.
    Raises PublishError on failure.
    """

    async def publish(self, records: Sequence[UpstreamRecord]) -> None: ...
