"""Analytics over sync history."""

from cuesync.processing.analytics import AnalyticsAggregator, EntryAggregate, aggregate_entries

__all__ = ["AnalyticsAggregator", "EntryAggregate", "aggregate_entries"]
