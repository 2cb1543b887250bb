"""
Cursor Resolver - Compute the next watermark from a fetched batch.

Rules:
- Nothing open in the batch: the window end becomes the new watermark.
- Some records still open: the earliest open start becomes the new
  watermark, so the next window fetches every open record again until it
  closes.

The second rule can move the watermark behind where it was (an open
record that began before the current watermark). That regression is
honored, never clamped: it is what keeps long-running records from
falling into a missing time range.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from cursor_sync.core.errors import DataQualityError
from cursor_sync.core.models import SyncWindow, UpstreamRecord
from cursor_sync.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Resolution:
    """Result of resolving one batch."""

    next_watermark: datetime
    open_records: int = 0
    closed_records: int = 0
    # Open record that pinned the watermark, if any
    pinned_by: str | None = None
    regressed: bool = False
    issues: list[DataQualityError] = field(default_factory=list)

    @property
    def has_open_records(self) -> bool:
        return self.open_records > 0


class CursorResolver:
    """
    Resolves the next watermark for a window.

    Example:
        resolver = CursorResolver()
        resolution = resolver.resolve(window, records)
        store.compare_and_swap(key, cursor.version, resolution.next_watermark)
    """

    def resolve(
        self,
        window: SyncWindow,
        records: Sequence[UpstreamRecord],
        previous_watermark: datetime | None = None,
    ) -> Resolution:
        """
        Compute the next watermark for ``window`` given its fetched records.

        Args:
            window: The window the records were fetched for
            records: Records returned by the provider
            previous_watermark: Currently committed watermark, used only to
                flag a regression

        Returns:
            Resolution with the watermark and any data-quality issues
        """
        issues: list[DataQualityError] = []
        earliest: UpstreamRecord | None = None
        open_count = 0
        closed_count = 0

        for record in records:
            if record.is_malformed:
                issues.append(
                    DataQualityError(
                        f"Record {record.record_id} has neither start nor end",
                        record_id=record.record_id,
                    )
                )
                continue

            if not record.is_open:
                closed_count += 1
                if (
                    record.record_start is not None
                    and record.record_end is not None
                    and record.record_end < record.record_start
                ):
                    issues.append(
                        DataQualityError(
                            f"Record {record.record_id} ends before it starts",
                            record_id=record.record_id,
                        )
                    )
                continue

            open_count += 1
            if earliest is None or record.record_start < earliest.record_start:
                earliest = record

        if earliest is None:
            resolution = Resolution(
                next_watermark=window.end,
                closed_records=closed_count,
                issues=issues,
            )
        else:
            # An open record reported past the window must not push the
            # watermark beyond the range actually fetched.
            resolution = Resolution(
                next_watermark=min(earliest.record_start, window.end),
                open_records=open_count,
                closed_records=closed_count,
                pinned_by=earliest.record_id,
                issues=issues,
            )

        if (
            previous_watermark is not None
            and resolution.next_watermark < previous_watermark
        ):
            resolution.regressed = True
            logger.debug(
                "Watermark moves back to %s for open record %s",
                resolution.next_watermark.isoformat(),
                resolution.pinned_by,
            )

        for issue in issues:
            logger.warning("Data quality: %s", issue)

        return resolution
