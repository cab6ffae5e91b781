"""Sync queue: batched background delivery.

Capsules wait in an insertion-ordered pending map. A single drain loop takes
them in fixed-size batches, syncs each batch concurrently and pauses between
batches to bound the outbound request rate. A capsule leaves the pending map
only once its sync has completed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from cuesync.observability import prometheus_metrics

if TYPE_CHECKING:
    from cuesync.models.capsule import ContextCapsule
    from cuesync.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


class SyncQueueClosed(RuntimeError):
    """Raised when enqueueing into a closed queue."""


class SyncQueue:
    """Batched background sync queue with one drain loop per instance."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        batch_size: int = 5,
        inter_batch_delay_seconds: float = 1.0,
    ) -> None:
        """Initialize queue.

        Args:
            orchestrator: Performs each capsule's sync
            batch_size: Maximum capsules synced concurrently per batch
            inter_batch_delay_seconds: Pause between batches when work remains
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.orchestrator = orchestrator
        self.batch_size = batch_size
        self.inter_batch_delay_seconds = inter_batch_delay_seconds

        self._pending: dict[str, ContextCapsule] = {}
        self._in_flight: set[str] = set()
        self._requeued: set[str] = set()
        self._lock = asyncio.Lock()
        self._idle = asyncio.Event()
        self._idle.set()
        self._draining = False
        self._closing = False
        self._drain_task: asyncio.Task[None] | None = None

        self.batch_sizes: list[int] = []
        self.failures: list[tuple[str, BaseException]] = []

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, capsule_id: str) -> bool:
        return capsule_id in self._pending

    async def enqueue(self, capsule: ContextCapsule) -> None:
        """Add ``capsule`` and make sure the drain loop is running.

        Enqueueing a capsule that is currently being synced schedules it for
        one more pass.

        Raises:
            SyncQueueClosed: If ``close`` has been called
        """
        async with self._lock:
            if self._closing:
                raise SyncQueueClosed("Sync queue is closed")
            if capsule.id in self._in_flight:
                self._requeued.add(capsule.id)
            self._pending[capsule.id] = capsule
            prometheus_metrics.update_queue_depth(len(self._pending))

            if not self._draining:
                self._draining = True
                self._idle.clear()
                self._drain_task = asyncio.create_task(self._drain_loop(), name="cuesync-drain")
        logger.debug(f"Enqueued capsule {capsule.id} ({len(self._pending)} pending)")

    async def drain(self) -> None:
        """Process pending capsules until the queue is empty.

        Returns immediately when a drain loop is already active.
        """
        async with self._lock:
            if self._draining or not self._pending:
                return
            self._draining = True
            self._idle.clear()
        await self._drain_loop()

    async def _drain_loop(self) -> None:
        logger.info("Sync queue drain started")
        try:
            while True:
                batch = await self._next_batch()
                if not batch:
                    break

                self.batch_sizes.append(len(batch))
                prometheus_metrics.record_queue_batch()
                logger.info(f"Syncing batch of {len(batch)} capsules")

                results = await asyncio.gather(
                    *(self.orchestrator.sync_all(capsule) for capsule in batch),
                    return_exceptions=True,
                )
                more_work = await self._settle_batch(batch, results)

                if more_work and self.inter_batch_delay_seconds > 0:
                    await asyncio.sleep(self.inter_batch_delay_seconds)
        finally:
            async with self._lock:
                self._draining = False
                self._drain_task = None
                self._idle.set()
            logger.info("Sync queue drain finished")

    async def _next_batch(self) -> list[ContextCapsule]:
        async with self._lock:
            if self._closing:
                return []
            batch = [c for cid, c in self._pending.items() if cid not in self._in_flight]
            batch = batch[: self.batch_size]
            self._in_flight.update(c.id for c in batch)
            return batch

    async def _settle_batch(
        self,
        batch: list[ContextCapsule],
        results: list[object],
    ) -> bool:
        async with self._lock:
            for capsule, result in zip(batch, results, strict=True):
                self._in_flight.discard(capsule.id)
                if isinstance(result, BaseException):
                    logger.error(f"Queued sync of capsule {capsule.id} failed: {result}")
                    prometheus_metrics.increment_errors(
                        "queue", result.__class__.__name__, "critical"
                    )
                    self.failures.append((capsule.id, result))

                if capsule.id in self._requeued:
                    self._requeued.discard(capsule.id)
                else:
                    self._pending.pop(capsule.id, None)

            prometheus_metrics.update_queue_depth(len(self._pending))
            return bool(self._pending) and not self._closing

    async def join(self) -> None:
        """Wait until the drain loop has nothing left to do."""
        await self._idle.wait()

    async def close(self) -> None:
        """Stop after the current batch; capsules not yet started stay pending."""
        async with self._lock:
            self._closing = True
            task = self._drain_task
        if task is not None:
            await task
        if self._pending:
            logger.warning(f"Sync queue closed with {len(self._pending)} capsules pending")
