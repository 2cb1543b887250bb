"""Exceptions raised by the sync engine and its collaborators."""

from __future__ import annotations

from typing import Any


class SyncError(Exception):
    """Base exception for sync errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.context = context


class FetchError(SyncError):
    """Raised when the provider could not return a batch."""

    retryable = False


class TransientFetchError(FetchError):
    """Fetch failed in a way a later attempt may not (network, 5xx, 429)."""

    retryable = True


class PermanentFetchError(FetchError):
    """Fetch failed in a way retrying cannot fix (bad request, auth)."""

    pass


class PublishError(SyncError):
    """Raised when the downstream sink rejected a batch."""

    pass


class StorageError(SyncError):
    """Raised when the cursor store could not complete an operation."""

    pass


class StageTimeoutError(SyncError):
    """Raised when a stage exceeded its deadline."""

    def __init__(self, stage: str, timeout: float) -> None:
        super().__init__(f"{stage} exceeded deadline of {timeout:g}s", stage=stage)
        self.stage = stage
        self.timeout = timeout


class DataQualityError(SyncError):
    """
    A record that cannot take part in cursor resolution.

    Never raised by the orchestrator: instances are collected on the
    resolution and reported with the cycle result.
    """

    def __init__(self, message: str, record_id: str | None = None) -> None:
        super().__init__(message, record_id=record_id)
        self.record_id = record_id
