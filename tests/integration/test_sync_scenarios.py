"""End-to-end sync scenarios through the engine."""

from __future__ import annotations

import pytest

from cuesync.config import CuesyncConfig, QueueConfig
from cuesync.engine import CuesyncEngine
from cuesync.errors import ErrorKind, ProviderError
from cuesync.models.capsule import SyncStatus
from cuesync.sync.orchestrator import aggregate_status

PLATFORMS = ("chatgpt", "claude", "gemini")


@pytest.fixture
def build_engine(fake_client_cls, fake_completion):
    """Engine factory with one scripted client per platform."""

    async def _build(replies: dict[str, object] | None = None, **queue) -> CuesyncEngine:
        replies = replies or {}
        clients = {
            name: fake_client_cls(replies[name]) if name in replies else fake_client_cls()
            for name in PLATFORMS
        }
        config = CuesyncConfig(queue=QueueConfig(inter_batch_delay_seconds=0, **queue))
        engine = CuesyncEngine.from_config(config, clients=clients, completion=fake_completion)
        await engine.initialize()
        return engine

    return _build


class TestSyncScenarios:
    """Test suite for complete extract-and-sync flows."""

    @pytest.fixture
    async def engine_factory(self, build_engine):
        created: list[CuesyncEngine] = []

        async def _factory(**kwargs) -> CuesyncEngine:
            engine = await build_engine(**kwargs)
            created.append(engine)
            return engine

        yield _factory
        for engine in created:
            await engine.aclose()

    async def test_caching_question_reaches_both_targets(self, engine_factory, make_turn) -> None:
        """Test the caching turn is extracted and delivered to claude and gemini."""
        engine = await engine_factory()

        capsule = await engine.extract_capsule(make_turn(source="chatgpt"))
        results = await engine.sync_now(capsule)

        assert capsule.target_platforms == ["claude", "gemini"]
        assert len(results) == 2
        assert all(r.success for r in results)
        assert capsule.extracted_context.key_points
        assert {"API", "cache"} <= set(capsule.extracted_context.term_names)
        assert capsule.sync_status is SyncStatus.SYNCED
        for result in results:
            assert "cache API responses" in result.adapted_content

    async def test_every_target_fails(self, engine_factory, make_turn) -> None:
        """Test a run with no successful delivery ends failed with classified errors."""
        engine = await engine_factory(
            replies={
                "claude": ProviderError("overloaded", ErrorKind.API_ERROR, 529),
                "gemini": RuntimeError("connection reset by peer"),
            }
        )

        capsule = await engine.extract_capsule(make_turn())
        results = await engine.sync_now(capsule)

        assert capsule.sync_status is SyncStatus.FAILED
        assert await engine.get_sync_status(capsule.id) is SyncStatus.FAILED
        assert all(r.error is not None and r.error.kind in ErrorKind for r in results)
        assert [r.error.kind for r in results] == [ErrorKind.API_ERROR, ErrorKind.NETWORK_ERROR]

    async def test_one_target_fails(self, engine_factory, make_turn) -> None:
        """Test a single failing provider leaves the capsule partial."""
        engine = await engine_factory(replies={"gemini": TimeoutError()})

        capsule = await engine.extract_capsule(make_turn())
        results = await engine.sync_now(capsule)

        assert capsule.sync_status is SyncStatus.PARTIAL
        assert sum(r.success for r in results) == 1
        assert results[1].error.kind is ErrorKind.TIMEOUT_ERROR

    async def test_batched_background_sync(self, engine_factory, make_turn) -> None:
        """Test twelve queued capsules drain in batches of five, five and two."""
        engine = await engine_factory(batch_size=5)
        capsules = [await engine.extract_capsule(make_turn()) for _ in range(12)]

        for capsule in capsules:
            await engine.enqueue_sync(capsule)
        await engine.queue.join()

        assert engine.queue.batch_sizes == [5, 5, 2]
        assert await engine.store.count_history() == 24
        stats = await engine.get_analytics("hour")
        assert stats.total_attempts == 24
        assert stats.platform_breakdown["claude"].total_attempts == 12


class TestSyncProperties:
    """Test suite for properties that hold across every sync."""

    @pytest.fixture
    async def engine(self, build_engine):
        engine = await build_engine(replies={"gemini": RuntimeError("boom")})
        yield engine
        await engine.aclose()

    @pytest.mark.parametrize("runs", [1, 3])
    async def test_one_history_entry_per_target_per_run(self, engine, make_turn, runs) -> None:
        capsule = await engine.extract_capsule(make_turn())

        for _ in range(runs):
            await engine.sync_now(capsule)

        assert len(capsule.sync_history) == runs * len(capsule.target_platforms)
        loaded = await engine.get_capsule(capsule.id)
        assert len(loaded.sync_history) == runs * len(capsule.target_platforms)

    @pytest.mark.parametrize("source", PLATFORMS)
    async def test_source_is_excluded(self, engine, make_turn, source) -> None:
        capsule = await engine.extract_capsule(make_turn(source=source))

        results = await engine.sync_now(capsule)

        assert source not in capsule.target_platforms
        assert source not in {r.target_platform for r in results}

    async def test_status_follows_results(self, engine, make_turn) -> None:
        capsule = await engine.extract_capsule(make_turn(source="claude"))

        results = await engine.sync_now(capsule)

        assert capsule.sync_status is aggregate_status(results)
        assert all(0 <= r.context_preservation_score <= 100 for r in results)
        assert all(r.context_preservation_score == 0 for r in results if not r.success)

    async def test_scoring_is_deterministic(self, engine, make_turn) -> None:
        first = await engine.extract_capsule(make_turn())
        second = await engine.extract_capsule(make_turn())

        assert first.quality_metrics == second.quality_metrics
