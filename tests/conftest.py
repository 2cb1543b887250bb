"""Shared fixtures and fakes for the sync engine tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Sequence

import pytest

from cursor_sync.core.clock import ManualClock
from cursor_sync.core.errors import PublishError
from cursor_sync.core.models import CursorKey, SyncWindow, UpstreamRecord
from cursor_sync.core.store import InMemoryCursorStore


def utc(hour: int, minute: int = 0, second: int = 0) -> datetime:
    """A timestamp on the fixed test day."""
    return datetime(2024, 3, 1, hour, minute, second, tzinfo=timezone.utc)


class FakeProvider:
    """Provider returning scripted batches and remembering requested windows."""

    def __init__(self, *batches: Sequence[UpstreamRecord]) -> None:
        self.batches = list(batches)
        self.windows: list[SyncWindow] = []
        self.error: Exception | None = None

    async def fetch(self, window: SyncWindow) -> list[UpstreamRecord]:
        self.windows.append(window)
        if self.error is not None:
            raise self.error
        if not self.batches:
            return []
        if len(self.batches) == 1:
            return list(self.batches[0])
        return list(self.batches.pop(0))


class GatedProvider:
    """Provider whose n-th fetch blocks until gates[n] is set."""

    def __init__(self, records: Sequence[UpstreamRecord], gates: int) -> None:
        self.records = list(records)
        self.gates = [asyncio.Event() for _ in range(gates)]
        self.calls = 0

    async def fetch(self, window: SyncWindow) -> list[UpstreamRecord]:
        gate = self.gates[self.calls]
        self.calls += 1
        await gate.wait()
        return list(self.records)


class IdempotentSink:
    """Sink keyed on record id; a republished record replaces itself."""

    def __init__(self) -> None:
        self.records: dict[str, UpstreamRecord] = {}
        self.publish_calls = 0
        self.fail_with: Exception | None = None

    async def publish(self, records: Sequence[UpstreamRecord]) -> None:
        self.publish_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        for record in records:
            self.records[record.record_id] = record


class CrashingSink(IdempotentSink):
    """Sink that stores the batch and then dies, like a process crash after publish."""

    async def publish(self, records: Sequence[UpstreamRecord]) -> None:
        await super().publish(records)
        raise PublishError("process died after publishing")


@pytest.fixture
def key() -> CursorKey:
    return CursorKey("vehicle", "42", "trips")


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(utc(10, 5))


@pytest.fixture
def store() -> InMemoryCursorStore:
    return InMemoryCursorStore()


@pytest.fixture
def sink() -> IdempotentSink:
    return IdempotentSink()
