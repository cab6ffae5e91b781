"""Adaptation, orchestration and queued delivery."""

from cuesync.sync.adapter import PlatformAdapter
from cuesync.sync.orchestrator import SyncOrchestrator, aggregate_status
from cuesync.sync.queue import SyncQueue, SyncQueueClosed

__all__ = [
    "PlatformAdapter",
    "SyncOrchestrator",
    "SyncQueue",
    "SyncQueueClosed",
    "aggregate_status",
]
