"""
Data model for cursor-based incremental sync.

- CursorKey: identifies one (source, target) progress marker
- Cursor: persisted watermark plus version for compare-and-swap
- SyncWindow: the [start, end) range requested from the provider
- UpstreamRecord: a provider entity, open while it has no end
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse a timestamp from a provider payload.

    Accepts datetimes, ISO-8601 strings (a trailing "Z" included) and
    epoch seconds. Empty values return None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool):
        raise ValueError(f"Not a timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return ensure_utc(datetime.fromisoformat(text))
    raise ValueError(f"Not a timestamp: {value!r}")


@dataclass(frozen=True)
class CursorKey:
    """Lookup key for a cursor: what is synced, and where it goes."""

    source_type: str
    source_id: str
    target_type: str = "default"

    def __post_init__(self) -> None:
        if not self.source_type or not self.source_id or not self.target_type:
            raise ValueError("CursorKey fields cannot be empty")

    def __str__(self) -> str:
        return f"{self.source_type}:{self.source_id}->{self.target_type}"


@dataclass(frozen=True)
class Cursor:
    """Committed sync progress for one key."""

    key: CursorKey
    watermark: datetime
    version: int
    updated_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "watermark", ensure_utc(self.watermark))
        object.__setattr__(self, "updated_at", ensure_utc(self.updated_at))

    def lag(self, now: datetime) -> timedelta:
        """How far the watermark trails ``now``."""
        return ensure_utc(now) - self.watermark


@dataclass(frozen=True)
class SyncWindow:
    """
    Time range requested from the provider.

    ``start`` is inclusive and ``end`` exclusive. When the planner had to
    clamp a lagging cursor, ``gap_start`` holds the original watermark and
    ``[gap_start, start)`` is the range that will not be fetched.
    """

    start: datetime
    end: datetime
    gap_start: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))
        if self.gap_start is not None:
            object.__setattr__(self, "gap_start", ensure_utc(self.gap_start))
        if self.end < self.start:
            raise ValueError(f"Window end {self.end} precedes start {self.start}")

    @property
    def clamped(self) -> bool:
        return self.gap_start is not None

    @property
    def gap(self) -> timedelta:
        """Size of the range dropped by clamping."""
        if self.gap_start is None:
            return timedelta(0)
        return self.start - self.gap_start

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    def to_dict(self) -> dict[str, Any]:
        data = {"start": self.start.isoformat(), "end": self.end.isoformat()}
        if self.gap_start is not None:
            data["gap_start"] = self.gap_start.isoformat()
        return data


@dataclass(frozen=True)
class UpstreamRecord:
    """
    Snapshot of a provider entity.

    A record is open (still in progress) while ``record_end`` is None.
    ``payload`` is forwarded downstream unchanged.
    """

    record_id: str
    record_start: datetime | None
    record_end: datetime | None = None
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Records from different providers must compare in one clock domain
        if self.record_start is not None:
            object.__setattr__(self, "record_start", ensure_utc(self.record_start))
        if self.record_end is not None:
            object.__setattr__(self, "record_end", ensure_utc(self.record_end))

    @property
    def is_open(self) -> bool:
        return self.record_end is None

    @property
    def is_malformed(self) -> bool:
        """True when the record carries neither a start nor an end marker."""
        return self.record_start is None and self.record_end is None

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any],
        id_field: str = "id",
        start_field: str = "start",
        end_field: str = "end",
    ) -> "UpstreamRecord":
        """Build a record from a provider payload."""
        record_id = data.get(id_field)
        if record_id is None or record_id == "":
            raise ValueError(f"Record is missing its '{id_field}' field")
        return cls(
            record_id=str(record_id),
            record_start=parse_timestamp(data.get(start_field)),
            record_end=parse_timestamp(data.get(end_field)),
            payload=dict(data),
        )
