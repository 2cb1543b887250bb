"""
Sync Orchestrator - One incremental sync cycle per cursor key.

A cycle walks PLANNING -> FETCHING -> RESOLVING -> PUBLISHING ->
COMMITTING. Records are always published before the new watermark is
committed: a crash between the two replays an overlapping window on the
next run, which the idempotent sink absorbs. Committing first could lose
the window for good.

No lock is held across fetch or publish. The compare-and-swap in the
commit is the only serialization point, so overlapping cycles for the
same key end with one DONE and the rest CONFLICT.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Sequence, TypeVar

from cursor_sync.config import Settings, StageTimeouts
from cursor_sync.core.clock import SystemClock
from cursor_sync.core.errors import (
    DataQualityError,
    PublishError,
    StageTimeoutError,
    StorageError,
    SyncError,
    TransientFetchError,
)
from cursor_sync.core.interfaces import Clock, RecordProvider, RecordSink
from cursor_sync.core.models import Cursor, CursorKey, SyncWindow, UpstreamRecord
from cursor_sync.core.planner import WindowPlanner
from cursor_sync.core.resolver import CursorResolver, Resolution
from cursor_sync.core.store import CasResult, CursorStore
from cursor_sync.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class SyncStage(str, Enum):
    """Stages of a sync cycle."""

    IDLE = "idle"
    PLANNING = "planning"
    FETCHING = "fetching"
    RESOLVING = "resolving"
    PUBLISHING = "publishing"
    COMMITTING = "committing"
    DONE = "done"


class CycleOutcome(str, Enum):
    """How a cycle ended."""

    DONE = "done"
    CONFLICT = "conflict"  # another writer committed first
    FAILED = "failed"
    DRY_RUN = "dry_run"


@dataclass
class CycleResult:
    """Report of one cycle for the invoking scheduler."""

    key: CursorKey
    outcome: CycleOutcome | None = None
    # For failures, the stage that failed
    stage: SyncStage = SyncStage.IDLE
    window: SyncWindow | None = None
    previous_watermark: datetime | None = None
    next_watermark: datetime | None = None
    observed_version: int | None = None
    committed_version: int | None = None
    records_fetched: int = 0
    records_published: int = 0
    open_records: int = 0
    issues: list[DataQualityError] = field(default_factory=list)
    error: SyncError | None = None
    cursor_state_unknown: bool = False
    start_time: float = 0.0
    end_time: float = 0.0

    @property
    def ok(self) -> bool:
        return self.outcome in (CycleOutcome.DONE, CycleOutcome.DRY_RUN)

    @property
    def failed(self) -> bool:
        return self.outcome == CycleOutcome.FAILED

    @property
    def needs_attention(self) -> bool:
        """True when an operator should look: failures and clamped gaps."""
        return self.failed or (self.window is not None and self.window.clamped)

    @property
    def duration_seconds(self) -> float:
        if self.end_time and self.start_time:
            return self.end_time - self.start_time
        if self.start_time:
            return time.time() - self.start_time
        return 0.0

    def to_dict(self) -> dict[str, Any]:
        """Summary suitable for logs and JSON output."""
        return {
            "key": str(self.key),
            "outcome": self.outcome.value if self.outcome else None,
            "stage": self.stage.value,
            "window": self.window.to_dict() if self.window else None,
            "previous_watermark": (
                self.previous_watermark.isoformat() if self.previous_watermark else None
            ),
            "next_watermark": (
                self.next_watermark.isoformat() if self.next_watermark else None
            ),
            "committed_version": self.committed_version,
            "records_fetched": self.records_fetched,
            "records_published": self.records_published,
            "open_records": self.open_records,
            "issues": [str(issue) for issue in self.issues],
            "error": str(self.error) if self.error else None,
            "cursor_state_unknown": self.cursor_state_unknown,
            "duration_seconds": round(self.duration_seconds, 3),
        }


# Called on every stage transition
StageCallback = Callable[[CycleResult], None]


class SyncOrchestrator:
    """
    Drives sync cycles for cursor keys.

    Example:
        orchestrator = SyncOrchestrator(
            store=SQLiteCursorStore("cursors.db"),
            provider=HttpRecordProvider(settings.provider),
            sink=SQLiteRecordSink("records.db"),
        )
        result = await orchestrator.run_cycle(CursorKey("vehicle", "42", "trips"))
        if result.failed:
            reschedule(result.key, result.stage)
    """

    def __init__(
        self,
        store: CursorStore,
        provider: RecordProvider,
        sink: RecordSink,
        clock: Clock | None = None,
        planner: WindowPlanner | None = None,
        resolver: CursorResolver | None = None,
        timeouts: StageTimeouts | None = None,
        concurrency: int = 4,
        dry_run: bool = False,
    ) -> None:
        self.store = store
        self.provider = provider
        self.sink = sink
        self.clock = clock or SystemClock()
        self.planner = planner or WindowPlanner()
        self.resolver = resolver or CursorResolver()
        self.timeouts = timeouts or StageTimeouts()
        self.concurrency = concurrency
        self.dry_run = dry_run

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: CursorStore,
        provider: RecordProvider,
        sink: RecordSink,
        clock: Clock | None = None,
    ) -> "SyncOrchestrator":
        """Create an orchestrator configured from settings."""
        return cls(
            store=store,
            provider=provider,
            sink=sink,
            clock=clock,
            planner=WindowPlanner(settings.window),
            timeouts=settings.timeouts,
            concurrency=settings.concurrency,
            dry_run=settings.dry_run,
        )

    async def run_cycle(
        self,
        key: CursorKey,
        on_stage: StageCallback | None = None,
    ) -> CycleResult:
        """
        Run one sync cycle for ``key``.

        Never raises for sync failures: the returned result carries the
        outcome, the stage reached and the originating error.
        """
        result = CycleResult(key=key)
        result.start_time = time.time()

        try:
            self._enter(result, SyncStage.PLANNING, on_stage)
            cursor, window = await self._plan(key, result)

            self._enter(result, SyncStage.FETCHING, on_stage)
            records = await self._fetch(window)
            result.records_fetched = len(records)

            self._enter(result, SyncStage.RESOLVING, on_stage)
            resolution = self.resolver.resolve(window, records, cursor.watermark)
            result.next_watermark = resolution.next_watermark
            result.open_records = resolution.open_records
            result.issues = list(resolution.issues)

            if self.dry_run:
                result.outcome = CycleOutcome.DRY_RUN
                self._enter(result, SyncStage.DONE, on_stage)
                logger.info("Dry run for %s: would commit %s", key, _iso(result.next_watermark))
                return result

            self._enter(result, SyncStage.PUBLISHING, on_stage)
            await self._publish(records)
            result.records_published = len(records)

            self._enter(result, SyncStage.COMMITTING, on_stage)
            await self._commit(key, cursor, resolution, result)

            if result.outcome == CycleOutcome.DONE:
                self._enter(result, SyncStage.DONE, on_stage)

        except SyncError as e:
            self._fail(result, e)
            if on_stage:
                on_stage(result)

        finally:
            result.end_time = time.time()

        return result

    async def run_many(
        self,
        keys: Iterable[CursorKey],
        concurrency: int | None = None,
    ) -> list[CycleResult]:
        """Run cycles for many keys at once, at most ``concurrency`` in flight."""
        semaphore = asyncio.Semaphore(concurrency or self.concurrency)

        async def _run(key: CursorKey) -> CycleResult:
            async with semaphore:
                try:
                    return await self.run_cycle(key)
                except Exception as e:
                    # One broken key must not cost the other keys their results
                    result = CycleResult(key=key)
                    self._fail(result, SyncError(f"Unexpected {type(e).__name__}: {e}"))
                    return result

        return list(await asyncio.gather(*(_run(key) for key in keys)))

    # =========================================================================
    # Stages
    # =========================================================================

    async def _plan(
        self,
        key: CursorKey,
        result: CycleResult,
    ) -> tuple[Cursor, SyncWindow]:
        """Read (or seed) the cursor and plan the window."""
        now = self.clock.now()
        cursor = await self._bounded(SyncStage.PLANNING, self._load_cursor(key, now))
        window = self.planner.plan(cursor, now)

        result.previous_watermark = cursor.watermark
        result.observed_version = cursor.version
        result.window = window

        if window.clamped:
            logger.warning(
                "Cursor %s lags beyond max lookback; skipping %s to %s (%s)",
                key,
                _iso(window.gap_start),
                _iso(window.start),
                window.gap,
                extra={"context": {"key": str(key), "window": window.to_dict()}},
            )
        return cursor, window

    async def _load_cursor(self, key: CursorKey, now: datetime) -> Cursor:
        cursor = await self._call_store(self.store.get, key)
        if cursor is None:
            seed = self.planner.seed_watermark(now)
            cursor = await self._call_store(self.store.create_if_absent, key, seed)
            logger.info("Seeded cursor %s at %s", key, _iso(cursor.watermark))
        return cursor

    async def _fetch(self, window: SyncWindow) -> list[UpstreamRecord]:
        try:
            records = await self._bounded(SyncStage.FETCHING, self.provider.fetch(window))
        except SyncError:
            raise
        except Exception as e:
            raise TransientFetchError(
                f"Provider raised {type(e).__name__}: {e}"
            ) from e
        return list(records)

    async def _publish(self, records: Sequence[UpstreamRecord]) -> None:
        if not records:
            logger.debug("Nothing to publish")
            return
        try:
            await self._bounded(SyncStage.PUBLISHING, self.sink.publish(records))
        except SyncError:
            raise
        except Exception as e:
            raise PublishError(f"Sink raised {type(e).__name__}: {e}") from e

    async def _commit(
        self,
        key: CursorKey,
        cursor: Cursor,
        resolution: Resolution,
        result: CycleResult,
    ) -> None:
        next_watermark = resolution.next_watermark
        try:
            cas = await self._bounded(
                SyncStage.COMMITTING,
                self._call_store(
                    self.store.compare_and_swap, key, cursor.version, next_watermark
                ),
            )
        except (StageTimeoutError, StorageError) as e:
            # The write may or may not have landed; only a fresh read can tell
            if await self._reconcile_commit(key, cursor, next_watermark, result):
                logger.warning("Commit for %s reported '%s' but was applied", key, e)
                result.outcome = CycleOutcome.DONE
                return
            if isinstance(e, StageTimeoutError) and not result.cursor_state_unknown:
                # The worker thread cannot be cancelled and may still apply the write
                result.cursor_state_unknown = True
                logger.error("Cursor %s state unknown: commit still pending after %s", key, e)
            raise

        if cas == CasResult.OK:
            result.outcome = CycleOutcome.DONE
            result.committed_version = cursor.version + 1
            logger.info(
                "Committed %s: %s -> %s (%d records, %d open)",
                key,
                _iso(cursor.watermark),
                _iso(next_watermark),
                result.records_fetched,
                result.open_records,
                extra={"context": result.to_dict()},
            )
        elif cas == CasResult.CONFLICT:
            result.outcome = CycleOutcome.CONFLICT
            logger.info(
                "Skipping commit for %s: cursor moved past version %d",
                key,
                cursor.version,
            )
        else:
            raise StorageError(f"Cursor {key} disappeared before commit", key=str(key))

    async def _reconcile_commit(
        self,
        key: CursorKey,
        cursor: Cursor,
        next_watermark: datetime,
        result: CycleResult,
    ) -> bool:
        """
        Re-read the cursor after an ambiguous commit. True if ours applied.

        The cursor carries no writer identity, so a competing cycle that
        committed the same watermark from the same version is indistinguishable
        from our own write. Both leave the cursor in the state we wanted.
        """
        try:
            current = await self._bounded(
                SyncStage.COMMITTING, self._call_store(self.store.get, key)
            )
        except (StageTimeoutError, StorageError) as e:
            logger.error("Cursor %s state unknown after failed commit: %s", key, e)
            result.cursor_state_unknown = True
            return False

        if (
            current is not None
            and current.version > cursor.version
            and current.watermark == next_watermark
        ):
            result.committed_version = current.version
            return True
        return False

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _call_store(self, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking store call in a worker thread."""
        try:
            return await asyncio.to_thread(func, *args)
        except SyncError:
            raise
        except Exception as e:
            raise StorageError(f"Cursor store raised {type(e).__name__}: {e}") from e

    async def _bounded(self, stage: SyncStage, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` under the stage's deadline."""
        timeout = self.timeouts.for_stage(stage.value)
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError as e:
            raise StageTimeoutError(stage.value, timeout or 0.0) from e

    def _enter(
        self,
        result: CycleResult,
        stage: SyncStage,
        on_stage: StageCallback | None,
    ) -> None:
        result.stage = stage
        logger.debug("%s -> %s", result.key, stage.value)
        if on_stage:
            on_stage(result)

    def _fail(self, result: CycleResult, error: SyncError) -> None:
        result.outcome = CycleOutcome.FAILED
        result.error = error
        logger.error(
            "Sync %s failed while %s: %s",
            result.key,
            result.stage.value,
            error,
            extra={"context": result.to_dict()},
        )


def _iso(value: datetime | None) -> str:
    return value.isoformat() if value else "-"
