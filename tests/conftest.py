"""Pytest configuration and fixtures for cuesync tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from cuesync.models.capsule import (
    ContextCapsule,
    ConversationMessage,
    ConversationTurn,
    ExtractedContext,
    SemanticMetadata,
    TechnicalComplexity,
    TechnicalTerm,
)
from cuesync.platforms.registry import PlatformRegistry, ProviderConfig
from cuesync.scoring.quality import QualityScorer
from cuesync.storage.sync_store import SyncStore
from cuesync.sync.adapter import PlatformAdapter
from cuesync.sync.orchestrator import SyncOrchestrator

DEFAULT_REPLY = (
    "As mentioned earlier, caching API responses works best with an LRU cache.\n"
    "- Pick a TTL that matches how fresh the data must be\n"
    "- Invalidate the cache when the underlying API changes\n"
    "Building on what we discussed before, measure the hit rate first."
)

ANALYSIS_REPLIES = {
    "SUMMARY:": (
        "SUMMARY: The user asks how to cache API responses; the assistant suggests an LRU cache with a TTL.\n"
        "KEY_POINT: Cache API responses to cut latency\n"
        "KEY_POINT: Use an LRU cache with a TTL\n"
    ),
    "PRIMARY_INTENT:": "PRIMARY_INTENT: problem_solving\nSECONDARY_INTENTS: learning; optimization",
    "PRIMARY_TOPIC:": "PRIMARY_TOPIC: API caching\nSUB_TOPICS: LRU; TTL\nDOMAIN: technology",
    "ENTITY:": (
        "ENTITY: LRU cache | technology | 0.9\n"
        "RELATION: LRU cache | expires by | TTL\n"
        "ACTION: Add a TTL to cached entries\n"
    ),
    "TERM:": "TERM: API | protocol\nTERM: cache | performance\nTERM: memoization | technique",
    "TONE:": "TONE: curious\nINTENSITY: 0.4\nURGENCY: 0.2",
    "PHASE:": "PHASE: initiation\nPROGRESS: 30\nDEPTH: 4\nNEXT: asks about cache invalidation",
    "ROOT_DOMAIN:": (
        "ROOT_DOMAIN: software engineering\n"
        "SUB_DOMAINS: performance; web APIs\n"
        "SPECIFIC_TOPICS: response caching; eviction\n"
        "CROSS_DOMAIN_LINKS: distributed systems"
    ),
    "FOLLOW_UP:": (
        "FOLLOW_UP: How do I invalidate the cache?\n"
        "MISUNDERSTANDING: TTL is not the same as LRU eviction\n"
        "NEXT_STEP: Measure the cache hit rate\n"
    ),
}


class FakeCompletion:
    """Scripted text-understanding capability.

    Replies are chosen by the first marker found in the prompt; a reply that
    is an exception is raised instead.
    """

    def __init__(
        self,
        replies: dict[str, str | BaseException] | None = None,
        default: str = "",
        delay: float = 0.0,
    ) -> None:
        self.replies = dict(ANALYSIS_REPLIES if replies is None else replies)
        self.default = default
        self.delay = delay
        self.calls: list[dict[str, object]] = []

    async def complete(self, prompt: str, *, temperature: float, max_tokens: int) -> str:
        self.calls.append({"prompt": prompt, "temperature": temperature, "max_tokens": max_tokens})
        if self.delay:
            await asyncio.sleep(self.delay)
        for marker, reply in self.replies.items():
            if marker in prompt:
                if isinstance(reply, BaseException):
                    raise reply
                return reply
        return self.default


class FakeProviderClient:
    """Provider client returning a fixed reply or raising a fixed error."""

    def __init__(self, reply: str | BaseException = DEFAULT_REPLY, delay: float = 0.0) -> None:
        self.reply = reply
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    async def complete(self, prompt: str, config: ProviderConfig) -> str:
        self.calls.append((config.name, prompt))
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.reply, BaseException):
            raise self.reply
        return self.reply

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture(scope="session", autouse=True)
def setup_telemetry():
    """Setup OpenTelemetry once per test session (no exporters)."""
    from cuesync.observability.tracing import setup_telemetry, shutdown_telemetry

    setup_telemetry(service_name="cuesync-test", enable_console_export=False)
    yield
    shutdown_telemetry()


@pytest.fixture
def fake_completion_cls() -> type[FakeCompletion]:
    return FakeCompletion


@pytest.fixture
def fake_client_cls() -> type[FakeProviderClient]:
    return FakeProviderClient


@pytest.fixture
def fake_completion() -> FakeCompletion:
    """Collaborator answering every analysis template."""
    return FakeCompletion()


@pytest.fixture
def registry() -> PlatformRegistry:
    """Default platforms: chatgpt, claude, gemini."""
    return PlatformRegistry()


@pytest.fixture
async def store():
    """Fresh in-memory sync store."""
    sync_store = SyncStore(database_path=":memory:")
    await sync_store.initialize()
    yield sync_store
    await sync_store.close()


@pytest.fixture
def make_turn() -> Callable[..., ConversationTurn]:
    def _make(
        user: str = "How do I cache API responses?",
        assistant: str = "Use an LRU cache with a TTL.",
        source: str = "chatgpt",
        history: list[tuple[str, str]] | None = None,
        user_id: str = "user-1",
    ) -> ConversationTurn:
        return ConversationTurn(
            user_message=user,
            assistant_message=assistant,
            history=[ConversationMessage(role=r, content=c) for r, c in history or []],
            source_platform=source,
            user_id=user_id,
        )

    return _make


@pytest.fixture
def make_capsule(make_turn) -> Callable[..., ContextCapsule]:
    """Build capsules directly, without running extraction."""

    def _make(
        targets: tuple[str, ...] = ("claude", "gemini"),
        source: str = "chatgpt",
        summary: str = "The user asks how to cache API responses with an LRU cache and a TTL.",
        terms: tuple[str, ...] = ("API", "cache"),
        complexity: str = "simple",
    ) -> ContextCapsule:
        turn = make_turn(source=source)
        return ContextCapsule(
            user_id=turn.user_id,
            source_platform=source,
            turn=turn,
            extracted_context=ExtractedContext(
                summary=summary,
                key_points=["Cache API responses", "Use an LRU cache with a TTL"],
                technical_terms=[TechnicalTerm(term=t) for t in terms],
            ),
            semantic_metadata=SemanticMetadata(
                technical_complexity=TechnicalComplexity(level=complexity)
            ),
            target_platforms=list(targets),
        )

    return _make


@pytest.fixture
def make_orchestrator(registry, store) -> Callable[..., SyncOrchestrator]:
    """Orchestrator over the default registry and the in-memory store."""

    def _make(clients: dict[str, FakeProviderClient], **kwargs) -> SyncOrchestrator:
        return SyncOrchestrator(
            registry=registry,
            adapter=PlatformAdapter(registry),
            scorer=QualityScorer(),
            clients=clients,
            store=store,
            **kwargs,
        )

    return _make
