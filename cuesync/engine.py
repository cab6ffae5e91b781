"""Cuesync engine: the exposed API and service lifecycle.

``CuesyncEngine`` wires the extraction pipeline, the sync orchestrator, the
background queue, the analytics aggregator and the store together. Every
collaborator is passed in explicitly; ``from_config`` builds the default set.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from cuesync.config import CuesyncConfig
from cuesync.extraction import ContextExtractor, ExtractionPipeline, SemanticAnalyzer
from cuesync.models.capsule import ContextCapsule, ConversationTurn, SyncStatus
from cuesync.models.sync import SyncResult, SyncStats, TimeRange
from cuesync.observability import prometheus_metrics
from cuesync.platforms.registry import PlatformRegistry
from cuesync.processing.analytics import AnalyticsAggregator
from cuesync.providers.base import ProviderClient, ProviderCompletion, TextCompletion
from cuesync.providers.http import build_client
from cuesync.resilience.circuit_breaker import CircuitBreakerRegistry
from cuesync.scoring.quality import QualityScorer
from cuesync.storage.sync_store import SyncStore
from cuesync.sync.adapter import PlatformAdapter
from cuesync.sync.orchestrator import SyncOrchestrator
from cuesync.sync.queue import SyncQueue

logger = logging.getLogger(__name__)


class CuesyncEngine:
    """Context extraction and cross-platform sync engine.

    Attributes:
        registry: Configured target platforms
        pipeline: Capsule creation (extract, analyze, score)
        orchestrator: Per-capsule fan-out delivery
        queue: Batched background delivery
        analytics: Aggregation over sync history
        store: Persistence for capsules and history
    """

    def __init__(
        self,
        registry: PlatformRegistry,
        pipeline: ExtractionPipeline,
        orchestrator: SyncOrchestrator,
        queue: SyncQueue,
        analytics: AnalyticsAggregator,
        store: SyncStore,
        clients: Mapping[str, ProviderClient] | None = None,
    ) -> None:
        self.registry = registry
        self.pipeline = pipeline
        self.orchestrator = orchestrator
        self.queue = queue
        self.analytics = analytics
        self.store = store
        self.clients = dict(clients or {})
        self._initialized = False

    @classmethod
    def from_config(
        cls,
        config: CuesyncConfig | None = None,
        *,
        clients: Mapping[str, ProviderClient] | None = None,
        completion: TextCompletion | None = None,
        store: SyncStore | None = None,
    ) -> CuesyncEngine:
        """Build an engine from configuration.

        Args:
            config: Engine configuration (defaults plus environment overrides)
            clients: Provider clients by platform (HTTP clients are built otherwise)
            completion: Text-understanding capability for extraction; defaults
                to the configured analysis platform's client
            store: Store to use instead of one at ``config.store.path``
        """
        config = config or CuesyncConfig()
        prometheus_metrics.set_metrics_enabled(config.metrics_enabled)

        registry = PlatformRegistry(config.platforms)
        if clients is None:
            clients = {name: build_client(registry.get(name)) for name in registry}

        analysis_platform = config.extraction.analysis_platform
        if completion is None and analysis_platform:
            client = clients.get(analysis_platform)
            if client is not None and analysis_platform in registry:
                completion = ProviderCompletion(client, registry.get(analysis_platform))
            else:
                logger.warning(
                    f"Analysis platform '{analysis_platform}' unavailable, "
                    "extraction runs on heuristics only"
                )

        scorer = QualityScorer(config.scoring)
        pipeline = ExtractionPipeline(
            registry=registry,
            extractor=ContextExtractor(completion, config.extraction),
            analyzer=SemanticAnalyzer(completion, config.extraction),
            scorer=scorer,
        )

        store = store or SyncStore(config.store.path)
        orchestrator = SyncOrchestrator(
            registry=registry,
            adapter=PlatformAdapter(registry),
            scorer=scorer,
            clients=clients,
            store=store,
            breakers=CircuitBreakerRegistry(config.resilience),
        )
        queue = SyncQueue(
            orchestrator,
            batch_size=config.queue.batch_size,
            inter_batch_delay_seconds=config.queue.inter_batch_delay_seconds,
        )

        return cls(
            registry=registry,
            pipeline=pipeline,
            orchestrator=orchestrator,
            queue=queue,
            analytics=AnalyticsAggregator(store),
            store=store,
            clients=clients,
        )

    async def initialize(self) -> None:
        """Open the store. Safe to call more than once."""
        if self._initialized:
            return
        await self.store.initialize()
        self._initialized = True
        logger.info(f"✅ Cuesync engine ready ({len(self.registry)} platforms)")

    async def __aenter__(self) -> CuesyncEngine:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def extract_capsule(self, turn: ConversationTurn) -> ContextCapsule:
        """Create, score and persist a capsule for ``turn``."""
        capsule = await self.pipeline.create_capsule(turn)
        await self.store.save_capsule(capsule)
        return capsule

    async def enqueue_sync(self, capsule: ContextCapsule) -> None:
        """Schedule ``capsule`` for background delivery."""
        await self.queue.enqueue(capsule)

    async def sync_now(self, capsule: ContextCapsule) -> list[SyncResult]:
        """Deliver ``capsule`` immediately and return one result per target."""
        return await self.orchestrator.sync_all(capsule)

    async def get_sync_status(self, capsule_id: str) -> SyncStatus | None:
        """Persisted status of a capsule, or None when it is unknown."""
        return await self.store.get_capsule_status(capsule_id)

    async def get_capsule(self, capsule_id: str) -> ContextCapsule | None:
        return await self.store.get_capsule(capsule_id)

    async def get_analytics(
        self,
        time_range: TimeRange | str = TimeRange.DAY,
        now: datetime | None = None,
    ) -> SyncStats:
        return await self.analytics.summarize(time_range, now=now)

    async def archive_capsule(self, capsule_id: str) -> bool:
        archived = await self.store.archive_capsule(capsule_id)
        if archived:
            logger.info(f"Archived capsule {capsule_id}")
        else:
            logger.warning(f"Cannot archive unknown capsule {capsule_id}")
        return archived

    async def aclose(self) -> None:
        """Stop the queue, let detached sync runs finish and release resources."""
        logger.info("Shutting down cuesync engine")
        await self.queue.close()
        await self.orchestrator.aclose()
        for name, client in self.clients.items():
            try:
                await client.aclose()
            except Exception as e:
                logger.warning(f"Failed to close client for {name}: {e}")
        await self.store.close()
        self._initialized = False
        logger.info("✅ Cuesync engine shutdown complete")
