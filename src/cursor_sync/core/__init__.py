"""Core sync engine components for Cursor Sync."""

from cursor_sync.core.clock import ManualClock, SystemClock
from cursor_sync.core.models import Cursor, CursorKey, SyncWindow, UpstreamRecord
from cursor_sync.core.orchestrator import (
    CycleOutcome,
    CycleResult,
    SyncOrchestrator,
    SyncStage,
)
from cursor_sync.core.planner import WindowPlanner, plan_window
from cursor_sync.core.resolver import CursorResolver, Resolution
from cursor_sync.core.store import CasResult, CursorStore, InMemoryCursorStore

__all__ = [
    "CasResult",
    "Cursor",
    "CursorKey",
    "CursorResolver",
    "CursorStore",
    "CycleOutcome",
    "CycleResult",
    "InMemoryCursorStore",
    "ManualClock",
    "Resolution",
    "SyncOrchestrator",
    "SyncStage",
    "SyncWindow",
    "SystemClock",
    "UpstreamRecord",
    "WindowPlanner",
    "plan_window",
]
