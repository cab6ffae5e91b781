"""Sync result and analytics models."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from cuesync.errors import SyncError


class SyncResult(BaseModel):
    """Per-target outcome returned to callers of a sync."""

    model_config = ConfigDict(frozen=True)

    target_platform: str
    success: bool
    synced_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    context_preservation_score: int = Field(0, ge=0, le=100)
    adapted_content: str = ""
    response_text: str | None = None
    error: SyncError | None = None


class TimeRange(str, Enum):
    """Analytics windows."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"

    @property
    def delta(self) -> timedelta:
        return {
            TimeRange.HOUR: timedelta(hours=1),
            TimeRange.DAY: timedelta(days=1),
            TimeRange.WEEK: timedelta(weeks=1),
        }[self]

    def window(self, now: datetime | None = None) -> tuple[datetime, datetime]:
        """Return ``(start, end)`` ending at ``now``."""
        end = now or datetime.now(UTC)
        return end - self.delta, end


class PlatformStats(BaseModel):
    """Aggregated statistics for one target platform."""

    platform: str
    total_attempts: int = 0
    successful_attempts: int = 0
    success_rate: float = 0.0
    average_score: int = 0
    average_sync_time_ms: float = 0.0
    p95_sync_time_ms: float = 0.0


class SyncStats(BaseModel):
    """Aggregated statistics for one analytics window."""

    time_range: TimeRange
    window_start: datetime
    window_end: datetime
    total_attempts: int = 0
    successful_attempts: int = 0
    success_rate: float = 0.0
    average_score: int = 0
    average_sync_time_ms: float = 0.0
    p95_sync_time_ms: float = 0.0
    platform_breakdown: dict[str, PlatformStats] = Field(default_factory=dict)
