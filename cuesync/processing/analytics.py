"""Sync analytics: success-rate, score and latency statistics per time window.

Reads committed sync-history entries from the store and aggregates them
overall and per target platform. Source records are never modified.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

import numpy as np

from cuesync.models.sync import PlatformStats, SyncStats, TimeRange
from cuesync.observability import add_span_attributes, record_counter, record_histogram, traced

if TYPE_CHECKING:
    from cuesync.models.capsule import SyncHistoryEntry
    from cuesync.storage.sync_store import SyncStore

logger = logging.getLogger(__name__)


@dataclass
class EntryAggregate:
    """Raw aggregate over a set of history entries."""

    total_attempts: int = 0
    successful_attempts: int = 0
    success_rate: float = 0.0
    average_score: int = 0
    average_sync_time_ms: float = 0.0
    p95_sync_time_ms: float = 0.0


def aggregate_entries(entries: Sequence[SyncHistoryEntry]) -> EntryAggregate:
    """Aggregate history entries.

    The mean score covers every attempt, so failed attempts pull it down
    with their score of 0. An empty sequence yields all zeros.
    """
    if not entries:
        return EntryAggregate()

    successes = np.array([e.success for e in entries], dtype=bool)
    scores = np.array([e.context_preservation_score for e in entries], dtype=np.float64)
    durations = np.array([e.performance.total_sync_time_ms for e in entries], dtype=np.float64)

    return EntryAggregate(
        total_attempts=len(entries),
        successful_attempts=int(successes.sum()),
        success_rate=round(float(successes.mean()), 4),
        average_score=int(np.floor(scores.mean() + 0.5)),
        average_sync_time_ms=round(float(durations.mean()), 3),
        p95_sync_time_ms=round(float(np.percentile(durations, 95)), 3),
    )


class AnalyticsAggregator:
    """On-demand aggregation over persisted sync history."""

    def __init__(self, store: SyncStore) -> None:
        self.store = store

    @traced("analytics_summarize")
    async def summarize(
        self,
        time_range: TimeRange | str,
        now: datetime | None = None,
    ) -> SyncStats:
        """Summarize sync history inside ``time_range`` ending at ``now``.

        Args:
            time_range: hour, day or week
            now: Window end (defaults to the current UTC time)

        Returns:
            Overall statistics with a per-platform breakdown
        """
        time_range = TimeRange(time_range)
        start, end = time_range.window(now)
        entries = await self.store.query_sync_history(start, end)

        add_span_attributes(
            {"analytics.time_range": time_range.value, "analytics.entries": len(entries)}
        )

        by_platform: dict[str, list[SyncHistoryEntry]] = defaultdict(list)
        for entry in entries:
            by_platform[entry.target_platform].append(entry)

        breakdown = {
            platform: PlatformStats(platform=platform, **vars(aggregate_entries(group)))
            for platform, group in sorted(by_platform.items())
        }
        overall = aggregate_entries(entries)

        record_counter("analytics.summaries", 1, {"time_range": time_range.value})
        record_histogram("analytics.success_rate", overall.success_rate)

        if not entries:
            logger.debug(f"No sync history in the last {time_range.value}")
        else:
            logger.info(
                f"Analytics ({time_range.value}): {overall.total_attempts} attempts, "
                f"{overall.success_rate:.1%} success, avg score {overall.average_score}"
            )

        return SyncStats(
            time_range=time_range,
            window_start=start,
            window_end=end,
            platform_breakdown=breakdown,
            **vars(overall),
        )
