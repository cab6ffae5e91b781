"""Tests for the engine facade."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from cuesync.config import CuesyncConfig, ExtractionConfig, QueueConfig
from cuesync.engine import CuesyncEngine
from cuesync.errors import ErrorKind, ErrorSeverity
from cuesync.models.capsule import SyncStatus
from cuesync.models.sync import TimeRange
from cuesync.providers import OpenAIChatClient, ProviderCompletion
from cuesync.resilience.circuit_breaker import CircuitBreakerConfig


class TestCuesyncEngine:
    """Test suite for CuesyncEngine."""

    @pytest.fixture
    def clients(self, fake_client_cls):
        return {name: fake_client_cls() for name in ("chatgpt", "claude", "gemini")}

    @pytest.fixture
    async def engine(self, clients, fake_completion):
        config = CuesyncConfig(queue=QueueConfig(inter_batch_delay_seconds=0))
        engine = CuesyncEngine.from_config(config, clients=clients, completion=fake_completion)
        async with engine:
            yield engine

    async def test_extract_persists_capsule(self, engine, make_turn) -> None:
        """Test extracted capsules are stored and loadable."""
        capsule = await engine.extract_capsule(make_turn())

        loaded = await engine.get_capsule(capsule.id)

        assert loaded is not None
        assert loaded.extracted_context.primary_topic == "API caching"
        assert await engine.get_sync_status(capsule.id) is SyncStatus.PENDING

    async def test_sync_now(self, engine, make_turn) -> None:
        """Test an immediate sync persists status, adaptations and history."""
        capsule = await engine.extract_capsule(make_turn())

        results = await engine.sync_now(capsule)
        loaded = await engine.get_capsule(capsule.id)

        assert [r.target_platform for r in results] == ["claude", "gemini"]
        assert await engine.get_sync_status(capsule.id) is SyncStatus.SYNCED
        assert len(loaded.platform_adaptations) == 2
        assert len(loaded.sync_history) == 2

    async def test_enqueue_and_analytics(self, engine, make_turn) -> None:
        """Test queued syncs show up in analytics."""
        capsule = await engine.extract_capsule(make_turn())

        await engine.enqueue_sync(capsule)
        await engine.queue.join()
        stats = await engine.get_analytics(TimeRange.HOUR)

        assert stats.total_attempts == 2
        assert stats.success_rate == 1.0
        assert set(stats.platform_breakdown) == {"claude", "gemini"}

    async def test_queued_and_immediate_syncs_persist_alike(self, engine, make_turn) -> None:
        """Test a capsule synced from the queue is stored with its adaptations."""
        immediate = await engine.extract_capsule(make_turn())
        queued = await engine.extract_capsule(make_turn())

        await engine.sync_now(immediate)
        await engine.enqueue_sync(queued)
        await engine.queue.join()

        for capsule_id in (immediate.id, queued.id):
            loaded = await engine.get_capsule(capsule_id)
            assert loaded.sync_status is SyncStatus.SYNCED
            assert {a.platform for a in loaded.platform_adaptations} == {"claude", "gemini"}
            assert len(loaded.sync_history) == 2

    async def test_archive(self, engine, make_turn) -> None:
        capsule = await engine.extract_capsule(make_turn())

        assert await engine.archive_capsule(capsule.id) is True
        assert await engine.archive_capsule("missing") is False
        assert (await engine.get_capsule(capsule.id)).is_archived

    async def test_unknown_capsule_status(self, engine) -> None:
        assert await engine.get_sync_status("missing") is None


class TestEngineLifecycle:
    """Test suite for engine construction and shutdown."""

    async def test_aclose_closes_clients(self, fake_client_cls, fake_completion) -> None:
        clients = {"claude": fake_client_cls(), "gemini": fake_client_cls()}
        engine = CuesyncEngine.from_config(clients=clients, completion=fake_completion)

        await engine.initialize()
        await engine.initialize()
        await engine.aclose()

        assert all(client.closed for client in clients.values())
        assert engine.store.conn is None

    def test_default_clients_and_analysis_completion(self) -> None:
        """Test HTTP clients are built and the analysis platform backs extraction."""
        engine = CuesyncEngine.from_config(CuesyncConfig())

        assert set(engine.clients) == {"chatgpt", "claude", "gemini"}
        assert isinstance(engine.clients["chatgpt"], OpenAIChatClient)
        completion = engine.pipeline.extractor.completion
        assert isinstance(completion, ProviderCompletion)
        assert completion.config.name == "claude"

    def test_missing_analysis_platform_uses_heuristics(self, fake_client_cls) -> None:
        config = CuesyncConfig(extraction=ExtractionConfig(analysis_platform="mistral"))

        engine = CuesyncEngine.from_config(config, clients={"claude": fake_client_cls()})

        assert engine.pipeline.extractor.completion is None

    async def test_client_close_failure_is_logged(
        self, fake_client_cls, fake_completion, caplog
    ) -> None:
        """Test one failing client does not stop the shutdown."""
        broken = fake_client_cls()
        broken.aclose = AsyncMock(side_effect=RuntimeError("socket gone"))
        other = fake_client_cls()
        engine = CuesyncEngine.from_config(
            clients={"claude": broken, "gemini": other}, completion=fake_completion
        )
        await engine.initialize()

        await engine.aclose()

        broken.aclose.assert_awaited_once()
        assert other.closed
        assert "Failed to close client for claude" in caplog.text

    async def test_missing_keys_stay_critical(self, monkeypatch, make_turn) -> None:
        """Test HTTP clients without API keys keep failing as critical errors."""
        for variable in ("OPENAI_API_KEY", "CLAUDE_API_KEY", "GEMINI_API_KEY"):
            monkeypatch.delenv(variable, raising=False)
        config = CuesyncConfig(resilience=CircuitBreakerConfig(failure_threshold=2))

        async with CuesyncEngine.from_config(config) as engine:
            capsule = await engine.extract_capsule(make_turn())
            runs = [await engine.sync_now(capsule) for _ in range(4)]

        for result in runs[-1]:
            assert result.error.kind is ErrorKind.API_ERROR
            assert result.error.severity is ErrorSeverity.CRITICAL
            assert not result.error.recoverable
            assert "_API_KEY" in result.error.message
