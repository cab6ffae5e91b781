"""Sync orchestrator.

Fans one capsule out to all of its target platforms concurrently, records a
history entry per attempt and settles the capsule's aggregate status. The
settled capsule, adaptations included, is saved whichever path started the
run.

Per-target failures never escape ``sync_all``: they become failed
``SyncResult`` records. Only ``StoreUnavailableError`` propagates.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING

from cuesync.errors import (
    ErrorKind,
    ErrorSeverity,
    MissingCredentialError,
    StoreUnavailableError,
    SyncError,
    classify_error,
)
from cuesync.models.capsule import (
    ContextCapsule,
    PerformanceMetrics,
    PlatformAdaptation,
    QualityMetrics,
    SyncHistoryEntry,
    SyncStatus,
    can_transition,
)
from cuesync.models.sync import SyncResult
from cuesync.observability import prometheus_metrics
from cuesync.observability.tracing import add_span_attributes, trace_operation
from cuesync.resilience.circuit_breaker import CircuitBreakerRegistry

if TYPE_CHECKING:
    from cuesync.platforms.registry import PlatformRegistry, ProviderConfig
    from cuesync.providers.base import ProviderClient
    from cuesync.scoring.quality import QualityScorer
    from cuesync.storage.sync_store import SyncStore
    from cuesync.sync.adapter import PlatformAdapter

logger = logging.getLogger(__name__)


def aggregate_status(results: list[SyncResult]) -> SyncStatus:
    """All succeeded -> synced, none -> failed, otherwise partial."""
    successes = sum(1 for r in results if r.success)
    if results and successes == len(results):
        return SyncStatus.SYNCED
    if successes == 0:
        return SyncStatus.FAILED
    return SyncStatus.PARTIAL


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


class SyncOrchestrator:
    """Delivers capsules to their target platforms."""

    def __init__(
        self,
        registry: PlatformRegistry,
        adapter: PlatformAdapter,
        scorer: QualityScorer,
        clients: Mapping[str, ProviderClient],
        store: SyncStore,
        breakers: CircuitBreakerRegistry | None = None,
    ) -> None:
        """Initialize orchestrator.

        Args:
            registry: Platform registry
            adapter: Builds per-target prompts
            scorer: Scores provider responses
            clients: Provider client per platform name
            store: Persistence for status and history
            breakers: Per-provider circuit breakers
        """
        self.registry = registry
        self.adapter = adapter
        self.scorer = scorer
        self.clients = dict(clients)
        self.store = store
        self.breakers = breakers or CircuitBreakerRegistry()
        self._capsule_locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._runs: set[asyncio.Task[list[SyncResult]]] = set()

    @property
    def active_runs(self) -> int:
        return len(self._runs)

    async def sync_all(self, capsule: ContextCapsule) -> list[SyncResult]:
        """Deliver ``capsule`` to every target and return one result per target.

        The run continues in the background if the caller stops waiting, so
        provider calls already issued are still scored and recorded.

        Raises:
            StoreUnavailableError: If status or history cannot be persisted
        """
        task = asyncio.create_task(self._run(capsule), name=f"cuesync-sync-{capsule.id}")
        self._runs.add(task)
        task.add_done_callback(self._on_run_done)
        return await asyncio.shield(task)

    def _on_run_done(self, task: asyncio.Task[list[SyncResult]]) -> None:
        self._runs.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Sync run {task.get_name()} failed: {exc}")

    async def aclose(self) -> None:
        """Wait for runs whose callers stopped waiting."""
        if self._runs:
            logger.info(f"Waiting for {len(self._runs)} in-flight sync runs")
            await asyncio.gather(*self._runs, return_exceptions=True)

    async def _run(self, capsule: ContextCapsule) -> list[SyncResult]:
        lock = self._capsule_locks.setdefault(capsule.id, asyncio.Lock())
        self._lock_users[capsule.id] = self._lock_users.get(capsule.id, 0) + 1
        try:
            async with lock:
                return await self._run_locked(capsule)
        finally:
            self._release_capsule_lock(capsule.id)

    def _release_capsule_lock(self, capsule_id: str) -> None:
        remaining = self._lock_users[capsule_id] - 1
        if remaining:
            self._lock_users[capsule_id] = remaining
            return
        del self._lock_users[capsule_id]
        del self._capsule_locks[capsule_id]

    async def _run_locked(self, capsule: ContextCapsule) -> list[SyncResult]:
        started = time.perf_counter()
        targets = list(capsule.target_platforms)

        with trace_operation(
            "cuesync.sync_all", {"capsule.id": capsule.id, "capsule.targets": len(targets)}
        ):
            if not targets:
                logger.warning(f"Capsule {capsule.id} has no target platforms")
                if not can_transition(capsule.sync_status, SyncStatus.FAILED):
                    capsule.transition_to(SyncStatus.SYNCING)
                return await self._finish(capsule, [], started)

            if capsule.sync_status is SyncStatus.SYNCING:
                logger.warning(f"Capsule {capsule.id} resumes an interrupted sync")
            else:
                capsule.transition_to(SyncStatus.SYNCING)
            await self.store.upsert_capsule_status(capsule.id, SyncStatus.SYNCING)

            adaptations = self._adapt_all(capsule, targets)
            if adaptations is None:
                results = [
                    SyncResult(
                        target_platform=target,
                        success=False,
                        error=SyncError(
                            kind=ErrorKind.UNKNOWN_ERROR,
                            message="Adaptation failed before delivery",
                            severity=ErrorSeverity.HIGH,
                            recoverable=False,
                        ),
                    )
                    for target in targets
                ]
                return await self._finish(capsule, results, started)

            outcomes = await asyncio.gather(
                *(self._deliver(capsule, adaptations[t]) for t in targets),
                return_exceptions=True,
            )
            results, store_error = self._collect(capsule, targets, outcomes)
            if store_error is not None:
                raise store_error
            return await self._finish(capsule, results, started)

    def _adapt_all(
        self, capsule: ContextCapsule, targets: list[str]
    ) -> dict[str, PlatformAdaptation] | None:
        try:
            adaptations = {target: self.adapter.adapt(capsule, target) for target in targets}
        except Exception as e:
            logger.error(f"Adaptation failed for capsule {capsule.id}: {e}")
            prometheus_metrics.increment_errors("orchestrator", e.__class__.__name__, "high")
            return None
        for adaptation in adaptations.values():
            capsule.set_adaptation(adaptation)
        return adaptations

    def _collect(
        self,
        capsule: ContextCapsule,
        targets: list[str],
        outcomes: list[SyncResult | BaseException],
    ) -> tuple[list[SyncResult], StoreUnavailableError | None]:
        results: list[SyncResult] = []
        store_error: StoreUnavailableError | None = None
        for target, outcome in zip(targets, outcomes, strict=True):
            if isinstance(outcome, SyncResult):
                results.append(outcome)
                continue
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, StoreUnavailableError):
                store_error = store_error or outcome
                continue
            logger.error(f"Unexpected delivery error for {capsule.id} -> {target}: {outcome}")
            results.append(
                SyncResult(
                    target_platform=target,
                    success=False,
                    error=SyncError(kind=ErrorKind.UNKNOWN_ERROR, message=str(outcome)),
                )
            )
        return results, store_error

    async def _deliver(self, capsule: ContextCapsule, adaptation: PlatformAdaptation) -> SyncResult:
        target = adaptation.platform
        started = time.perf_counter()
        config = self.registry.get(target)

        response_text: str | None = None
        error: SyncError | None = None
        try:
            client = self.clients.get(target)
            if client is None:
                raise MissingCredentialError(target, config.api_key_env)
            breaker = self.breakers.get_or_create_breaker(target)
            with trace_operation("cuesync.sync_target", {"platform": target}):
                response_text = await breaker.call(
                    self._complete, client, adaptation.adapted_prompt, config
                )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = classify_error(e)
            logger.error(f"❌ Sync {capsule.id} -> {target} failed: {error.kind.value}: {error.message}")
            prometheus_metrics.increment_errors("provider", error.kind.value, error.severity.value)
        round_trip_ms = _elapsed_ms(started)

        metrics: QualityMetrics | None = None
        if response_text is not None:
            metrics = self.scorer.score_sync(capsule, response_text, target)
        score = metrics.context_preservation_score if metrics else 0

        entry = SyncHistoryEntry(
            capsule_id=capsule.id,
            target_platform=target,
            success=error is None,
            context_preservation_score=score,
            adapted_prompt=adaptation.adapted_prompt,
            response_text=response_text,
            quality_metrics=metrics,
            error=error,
            performance=PerformanceMetrics(
                adaptation_time_ms=adaptation.metadata.adaptation_time_ms,
                provider_round_trip_ms=round_trip_ms,
                total_sync_time_ms=round(adaptation.metadata.adaptation_time_ms + round_trip_ms, 3),
            ),
        )
        capsule.record_attempt(entry)
        await self.store.append_sync_history(entry)
        prometheus_metrics.record_sync_attempt(
            target, entry.success, entry.performance.total_sync_time_ms, score if metrics else None
        )

        return SyncResult(
            target_platform=target,
            success=entry.success,
            synced_at=entry.timestamp,
            context_preservation_score=score,
            adapted_content=adaptation.adapted_prompt,
            response_text=response_text,
            error=error,
        )

    @staticmethod
    async def _complete(client: ProviderClient, prompt: str, config: ProviderConfig) -> str:
        return await asyncio.wait_for(
            client.complete(prompt, config), timeout=config.request_timeout_seconds
        )

    async def _finish(
        self, capsule: ContextCapsule, results: list[SyncResult], started: float
    ) -> list[SyncResult]:
        status = aggregate_status(results)
        capsule.transition_to(status)
        await self.store.save_capsule(capsule)

        successes = sum(1 for r in results if r.success)
        scores = [r.context_preservation_score for r in results]
        total_ms = _elapsed_ms(started)
        await self.store.append_performance_metrics(
            capsule_id=capsule.id,
            total_sync_time_ms=total_ms,
            target_count=len(results),
            success_count=successes,
            average_score=sum(scores) / len(scores) if scores else 0.0,
        )

        prometheus_metrics.record_capsule_sync(status.value)
        add_span_attributes({"sync.status": status.value, "sync.successes": successes})
        logger.info(
            f"Capsule {capsule.id} {status.value}: {successes}/{len(results)} targets "
            f"in {total_ms:.0f}ms"
        )
        return results
